"""
职员测试：注册待审批、登录、审批、资料修改、角色管理
"""
import pytest

from backend.src.models import Staff
from backend.src.services import staff_service
from helpers import reload


@pytest.fixture
def nurse_job(make_job_type):
    return make_job_type("Nurse")


def _register(job_type_id, /, **overrides):
    payload = {
        "name": "Sato Hana",
        "login_id": "sato",
        "email": "Sato@Clinic.test",
        "password": "secret1",
        "job_type_id": job_type_id,
    }
    payload.update(overrides)
    return staff_service.register_staff(payload)


class TestRegistration:
    """注册与登录"""

    def test_registration_waits_for_approval(self, nurse_job):
        staff = _register(nurse_job)

        assert staff["is_active"] is False
        assert staff["role"] == "member"
        assert staff["email"] == "sato@clinic.test"
        assert staff["job_type_name"] == "Nurse"
        assert staff["current_points"] == 0
        with pytest.raises(staff_service.InactiveStaffError):
            staff_service.authenticate("sato", "secret1")

    @pytest.mark.parametrize("overrides", [
        {"name": ""},
        {"login_id": None},
        {"email": "not-an-email"},
        {"password": "123"},
        {"job_type_id": "nurse"},
        {"job_type_id": 999},
    ])
    def test_invalid_registration(self, nurse_job, overrides):
        with pytest.raises(staff_service.StaffValidationError):
            _register(nurse_job, **overrides)

    def test_duplicates_rejected(self, nurse_job):
        _register(nurse_job)
        with pytest.raises(staff_service.DuplicateStaffError):
            _register(nurse_job, email="other@clinic.test")
        with pytest.raises(staff_service.DuplicateStaffError):
            _register(nurse_job, login_id="other")

    def test_login_after_approval(self, nurse_job, make_staff):
        admin_id = make_staff(admin=True)
        staff = _register(nurse_job)
        staff_service.approve_staff(admin_id, staff["id"])

        assert staff_service.authenticate("sato", "secret1")["id"] == staff["id"]
        with pytest.raises(staff_service.StaffValidationError):
            staff_service.authenticate("sato", "wrong-password")
        with pytest.raises(staff_service.StaffValidationError):
            staff_service.authenticate("nobody", "secret1")


class TestAdministration:
    """管理员操作"""

    def test_pending_list_and_approval_require_admin(self, nurse_job, make_staff):
        member_id = make_staff()
        admin_id = make_staff(admin=True)
        staff = _register(nurse_job)

        with pytest.raises(staff_service.StaffPermissionError):
            staff_service.list_pending_staff(member_id)
        with pytest.raises(staff_service.StaffPermissionError):
            staff_service.approve_staff(member_id, staff["id"])

        assert [s["id"] for s in staff_service.list_pending_staff(admin_id)] == [staff["id"]]
        staff_service.approve_staff(admin_id, staff["id"])
        assert staff_service.list_pending_staff(admin_id) == []

    def test_approve_missing_staff(self, make_staff):
        admin_id = make_staff(admin=True)
        with pytest.raises(staff_service.StaffNotFoundError):
            staff_service.approve_staff(admin_id, 999)

    def test_change_job_and_role(self, nurse_job, make_job_type, make_staff):
        doctor_job = make_job_type("Doctor")
        admin_id = make_staff(admin=True)
        staff_id = make_staff(job_type_id=nurse_job)

        updated = staff_service.update_staff_by_admin(admin_id, staff_id, {"job_type_id": doctor_job, "role": "admin"})

        assert updated["job_type_name"] == "Doctor"
        assert updated["is_admin"] is True

    def test_invalid_role_and_self_demotion(self, make_staff):
        admin_id = make_staff(admin=True)
        staff_id = make_staff()
        with pytest.raises(staff_service.StaffValidationError):
            staff_service.update_staff_by_admin(admin_id, staff_id, {"role": "owner"})
        with pytest.raises(staff_service.StaffValidationError):
            staff_service.update_staff_by_admin(admin_id, admin_id, {"role": "member"})


class TestProfile:
    """个人资料与密码"""

    def test_update_profile(self, make_staff):
        staff_id = make_staff()
        other_id = make_staff()
        updated = staff_service.update_profile(staff_id, {"name": "New Name", "email": "new@clinic.test"})
        assert updated["name"] == "New Name"
        with pytest.raises(staff_service.DuplicateStaffError):
            staff_service.update_profile(other_id, {"email": "new@clinic.test"})

    def test_change_password(self, nurse_job, make_staff):
        admin_id = make_staff(admin=True)
        staff = _register(nurse_job)
        staff_service.approve_staff(admin_id, staff["id"])

        with pytest.raises(staff_service.StaffValidationError):
            staff_service.change_password(staff["id"], "wrong", "another1")
        assert staff_service.change_password(staff["id"], "secret1", "another1") == {"updated": True}
        assert staff_service.authenticate("sato", "another1")["id"] == staff["id"]
        assert reload(Staff, staff["id"]).password_hash != "another1"


def test_reference_lists(make_job_type, make_category):
    make_job_type("Nurse")
    make_job_type("Retired", is_active=False)
    make_category("Reception", sort_order=1)
    make_category("Nursing", sort_order=0)

    assert [j["name"] for j in staff_service.list_job_types()] == ["Nurse"]
    assert [c["name"] for c in staff_service.list_categories()] == ["Nursing", "Reception"]
