"""
日报测试：发帖/回复积分、回复继承、标签与悬赏、编辑级联、软删除、隐藏、截止日期
"""
from datetime import date, datetime

import pytest

from backend.src.models import Diary, DiaryTag, Staff
from backend.src.services import diary_service
from helpers import action_logs_for, point_logs_for, reload


@pytest.fixture
def env(make_staff, make_category, make_job_type):
    nurse_job = make_job_type("Nurse")
    return {
        "nursing": make_category("Nursing", sort_order=0),
        "reception": make_category("Reception", sort_order=1),
        "author": make_staff("Sato Hana", job_type_id=nurse_job),
        "other": make_staff("Tanaka Ken"),
        "admin": make_staff("Admin", admin=True),
        "nurse_job": nurse_job,
    }


def _post(env, **overrides):
    payload = {
        "title": "Patient handoff",
        "content": "Bed 3 needs a dressing change",
        "target_date": "2024-01-10",
        "category_id": env["nursing"],
    }
    payload.update(overrides)
    return diary_service.create_diary(env["author"], payload)


class TestCreateDiary:
    """发帖与回复"""

    def test_post_pays_author(self, env):
        diary = _post(env, is_urgent=True, deadline="2024-01-12")

        assert diary["current_status"] == "UNREAD"
        assert diary["is_urgent"] is True
        assert diary["deadline"] == "2024-01-12"
        assert diary["category_name"] == "Nursing"
        assert point_logs_for(env["author"]) == [(2, "post", diary["id"])]
        assert action_logs_for(env["author"]) == [(diary["id"], "POST_DIARY", 2)]
        assert reload(Staff, env["author"]).current_points == 2

    def test_reply_inherits_parent(self, env):
        parent = _post(env)
        reply = diary_service.create_diary(env["other"], {
            "parent_id": parent["id"],
            "content": "Done at 10:00",
            "target_date": "2030-01-01",
            "category_id": env["reception"],
        })

        assert reply["parent_id"] == parent["id"]
        assert reply["target_date"] == "2024-01-10"
        assert reply["category_id"] == env["nursing"]
        assert reply["title"] == "Re: Patient handoff"
        assert point_logs_for(env["other"]) == [(3, "reply", reply["id"])]
        assert reload(Staff, env["other"]).current_points == 3

    def test_reply_to_reply_rejected(self, env):
        parent = _post(env)
        reply = diary_service.create_diary(env["other"], {"parent_id": parent["id"], "content": "ok"})
        with pytest.raises(diary_service.DiaryValidationError):
            diary_service.create_diary(env["author"], {"parent_id": reply["id"], "content": "nested"})
        assert reload(Staff, env["author"]).current_points == 2

    @pytest.mark.parametrize("overrides", [
        {"title": "  "},
        {"content": ""},
        {"target_date": None},
        {"target_date": "10/01/2024"},
        {"category_id": None},
        {"category_id": 999},
        {"deadline": "soon"},
    ])
    def test_validation_before_write(self, env, overrides):
        with pytest.raises(diary_service.DiaryValidationError):
            _post(env, **overrides)
        assert point_logs_for(env["author"]) == []

    def test_inactive_author_rejected(self, env, make_staff):
        pending = make_staff("Pending", is_active=False)
        with pytest.raises(diary_service.DiaryNotFoundError):
            diary_service.create_diary(pending, {
                "title": "x", "content": "y", "target_date": "2024-01-10", "category_id": env["nursing"],
            })

    def test_reply_to_missing_parent(self, env):
        with pytest.raises(diary_service.DiaryNotFoundError):
            diary_service.create_diary(env["other"], {"parent_id": 999, "content": "hello"})


class TestTagsAndBounty:
    """标签关联与悬赏积分"""

    def test_tags_and_bounty_are_stored(self, env, make_tag):
        medication = make_tag("Medication")
        patient = make_tag("Patient", css_class="tag-patient")

        diary = _post(env, tag_ids=[patient, medication, patient], bounty_points="15")

        assert diary["bounty_points"] == 15
        assert [t["id"] for t in diary["tags"]] == [medication, patient]
        assert diary["tags"][1]["css_class"] == "tag-patient"

        listed = diary_service.list_diaries_by_date("2024-01-10")
        assert [t["name"] for t in listed[0]["tags"]] == ["Medication", "Patient"]
        assert diary_service.get_diary(diary["id"])["bounty_points"] == 15

    def test_no_bounty_is_null(self, env):
        assert _post(env)["bounty_points"] is None
        assert _post(env, bounty_points=0)["bounty_points"] is None
        assert _post(env)["tags"] == []

    @pytest.mark.parametrize("overrides", [
        {"bounty_points": -1},
        {"bounty_points": "lots"},
        {"bounty_points": True},
        {"tag_ids": "1,2"},
        {"tag_ids": ["x"]},
        {"tag_ids": [999]},
    ])
    def test_invalid_tags_or_bounty(self, env, overrides):
        with pytest.raises(diary_service.DiaryValidationError):
            _post(env, **overrides)
        assert point_logs_for(env["author"]) == []

    def test_disabled_tag_rolls_back_diary(self, env, make_tag, session):
        retired = make_tag("Retired", is_active=False)
        with pytest.raises(diary_service.DiaryValidationError):
            _post(env, tag_ids=[retired])

        assert session.query(Diary).count() == 0
        assert session.query(DiaryTag).count() == 0
        assert reload(Staff, env["author"]).current_points == 0


class TestListAndDetail:
    """按日期列出与详情"""

    def test_list_by_date_excludes_deleted_hidden_and_replies(self, env):
        kept = _post(env, title="kept")
        hidden = _post(env, title="hidden")
        deleted = _post(env, title="deleted")
        _post(env, title="other day", target_date="2024-01-11")
        diary_service.create_diary(env["other"], {"parent_id": kept["id"], "content": "reply"})
        diary_service.set_hidden(env["admin"], hidden["id"], True)
        diary_service.delete_diary(env["author"], deleted["id"])

        listed = diary_service.list_diaries_by_date("2024-01-10")
        assert [d["title"] for d in listed] == ["kept"]
        assert len(listed[0]["replies"]) == 1

        with_hidden = diary_service.list_diaries_by_date("2024-01-10", include_hidden=True)
        assert {d["title"] for d in with_hidden} == {"kept", "hidden"}

    def test_viewer_mentions_and_status(self, env):
        _post(env, content="@Tanaka Ken please call the lab")
        _post(env, content="@Nurse team meeting at noon")

        listed = diary_service.list_diaries_by_date(date(2024, 1, 10), viewer_id=env["other"])
        flags = {d["content"]: d["mentions_viewer"] for d in listed}
        assert flags["@Tanaka Ken please call the lab"] is True
        assert flags["@Nurse team meeting at noon"] is False
        assert all(d["my_status"] == "UNREAD" for d in listed)

    def test_get_missing_diary(self, env):
        with pytest.raises(diary_service.DiaryNotFoundError):
            diary_service.get_diary(999)


class TestUpdateDiary:
    """编辑与级联"""

    def test_parent_edit_cascades_to_replies(self, env):
        parent = _post(env)
        reply = diary_service.create_diary(env["other"], {"parent_id": parent["id"], "content": "noted"})

        updated = diary_service.update_diary(env["author"], parent["id"], {
            "target_date": "2024-01-11",
            "category_id": env["reception"],
            "title": "Updated",
        })

        stored_reply = reload(Diary, reply["id"])
        assert updated["edited_by"] == env["author"]
        assert updated["edited_at"] is not None
        assert stored_reply.target_date == date(2024, 1, 11)
        assert stored_reply.category_id == env["reception"]

    def test_reply_cannot_change_date_or_category(self, env):
        parent = _post(env)
        reply = diary_service.create_diary(env["other"], {"parent_id": parent["id"], "content": "noted"})
        with pytest.raises(diary_service.DiaryValidationError):
            diary_service.update_diary(env["other"], reply["id"], {"target_date": "2024-02-01"})

    def test_only_author_or_admin(self, env):
        parent = _post(env)
        with pytest.raises(diary_service.DiaryPermissionError):
            diary_service.update_diary(env["other"], parent["id"], {"title": "hijack"})
        edited = diary_service.update_diary(env["admin"], parent["id"], {"title": "fixed typo"})
        assert edited["title"] == "fixed typo"
        assert edited["edited_by"] == env["admin"]


class TestDeleteAndHide:
    """软删除与隐藏"""

    def test_soft_delete_takes_replies_and_keeps_points(self, env):
        parent = _post(env)
        reply = diary_service.create_diary(env["other"], {"parent_id": parent["id"], "content": "noted"})

        diary_service.delete_diary(env["author"], parent["id"])

        assert reload(Diary, parent["id"]).is_deleted is True
        assert reload(Diary, reply["id"]).is_deleted is True
        assert reload(Staff, env["author"]).current_points == 2
        with pytest.raises(diary_service.DiaryNotFoundError):
            diary_service.get_diary(parent["id"])

    def test_hide_requires_admin(self, env):
        parent = _post(env)
        with pytest.raises(diary_service.DiaryPermissionError):
            diary_service.set_hidden(env["author"], parent["id"], True)


class TestDeadlines:
    """截止日期列表"""

    def test_upcoming_and_overdue(self, env):
        overdue = _post(env, title="overdue", deadline="2024-01-15")
        soon = _post(env, title="soon", deadline="2024-01-20")
        _post(env, title="later", deadline="2024-02-20")
        _post(env, title="no deadline")

        result = diary_service.list_upcoming_deadlines(7, now=datetime(2024, 1, 17, 10, 0))

        assert [d["id"] for d in result] == [overdue["id"], soon["id"]]
        assert [d["is_overdue"] for d in result] == [True, False]

    def test_invalid_window(self, env):
        with pytest.raises(diary_service.DiaryValidationError):
            diary_service.list_upcoming_deadlines("week")
