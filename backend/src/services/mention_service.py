"""@-mention resolution for diary bodies.

Pure functions over plain staff/job dictionaries so they can be reused by
list views and tested without a database.
"""
from typing import Dict, Iterable, List, Optional, Set

ALL_TOKEN = '@All'


def _mentioned(lowered_text: str, label: Optional[str]) -> bool:
    label = (label or "").strip()
    return bool(label) and f"@{label.lower()}" in lowered_text


def resolve_mentions(
    text: Optional[str],
    staff_directory: Iterable[Dict[str, object]],
    job_types: Optional[Iterable[Dict[str, object]]] = None,
) -> Set[int]:
    """Return the ids of staff addressed by ``text``.

    ``staff_directory`` items need ``id``, ``name`` and ``job_type_id``;
    ``job_types`` items need ``id`` and ``name``. ``@All`` addresses everyone,
    ``@<job name>`` everyone with that job, ``@<name>`` one person. Matching is
    a case-insensitive substring check.
    """
    if not text or '@' not in text:
        return set()
    lowered = text.lower()
    staff_list = list(staff_directory)

    if ALL_TOKEN.lower() in lowered:
        return {int(s["id"]) for s in staff_list}

    mentioned_jobs = {
        int(job["id"]) for job in (job_types or []) if _mentioned(lowered, job.get("name"))
    }
    recipients = set()
    for staff in staff_list:
        if staff.get("job_type_id") in mentioned_jobs or _mentioned(lowered, staff.get("name")):
            recipients.add(int(staff["id"]))
    return recipients


def mention_suggestions(
    query: Optional[str],
    staff_directory: Iterable[Dict[str, object]],
    job_types: Iterable[Dict[str, object]],
) -> List[Dict[str, object]]:
    """Autocomplete candidates for a partial ``@`` token: everyone, jobs, then people."""
    needle = (query or "").strip().lstrip('@').lower()
    suggestions: List[Dict[str, object]] = []
    if needle in 'all':
        suggestions.append({"type": "all", "label": "@All (everyone)", "value": ALL_TOKEN})
    for job in job_types:
        name = job.get("name") or ""
        if needle in name.lower():
            suggestions.append({"type": "job", "label": f"@{name}", "value": f"@{name}", "id": job.get("id")})
    for staff in staff_directory:
        name = staff.get("name") or ""
        if needle in name.lower():
            suggestions.append({"type": "staff", "label": f"@{name}", "value": f"@{name}", "id": staff.get("id")})
    return suggestions
