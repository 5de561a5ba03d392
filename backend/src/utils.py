def category_to_dict(category):
    return {
        "id": category.id,
        "name": category.name,
        "sort_order": category.sort_order,
        "is_active": category.is_active,
    }

def job_type_to_dict(job_type):
    return {
        "id": job_type.id,
        "name": job_type.name,
        "is_active": job_type.is_active,
    }

def tag_to_dict(tag):
    return {
        "id": tag.id,
        "name": tag.name,
        "css_class": tag.css_class,
        "is_active": tag.is_active,
    }

def user_status_to_dict(row):
    return {
        "staff_id": row.staff_id,
        "staff_name": row.staff.name if row.staff else None,
        "status": row.status,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }

def diary_to_dict(diary, include_replies=True):
    payload = {
        "id": diary.id,
        "parent_id": diary.parent_id,
        "category_id": diary.category_id,
        "category_name": diary.category.name if diary.category else None,
        "staff_id": diary.staff_id,
        "staff_name": diary.author.name if diary.author else None,
        "title": diary.title,
        "content": diary.content,
        "target_date": diary.target_date.isoformat() if diary.target_date else None,
        "is_urgent": diary.is_urgent,
        "deadline": diary.deadline.isoformat() if diary.deadline else None,
        "bounty_points": diary.bounty_points,
        "tags": [tag_to_dict(t) for t in diary.tags],
        "is_hidden": diary.is_hidden,
        "is_deleted": diary.is_deleted,
        "current_status": diary.current_status,
        "solved_by": diary.solved_by,
        "solved_at": diary.solved_at.isoformat() if diary.solved_at else None,
        "edited_by": diary.edited_by,
        "edited_at": diary.edited_at.isoformat() if diary.edited_at else None,
        "created_at": diary.created_at.isoformat() if diary.created_at else None,
        "user_statuses": [user_status_to_dict(s) for s in diary.user_statuses],
    }
    if include_replies and diary.parent_id is None:
        payload["replies"] = [
            diary_to_dict(reply, include_replies=False)
            for reply in diary.replies
            if not reply.is_deleted
        ]
    return payload
