from clinic.core.security import RoleName
from clinic.services.rbac import (
    DEFAULT_ROLE, ROLE_PRIORITY, get_permissions, get_role_names, has_permission, primary_role
)
from tests.helpers import create_doctor, create_nurse, create_patient, create_user


class TestPrimaryRole:

    def test_priority_table_is_strictly_ordered(self):
        priorities = [priority for _, priority in ROLE_PRIORITY]
        assert priorities == sorted(priorities, reverse=True)
        assert len(set(priorities)) == len(priorities)

    def test_single_role(self):
        assert primary_role(["Nurse"]) == RoleName.NURSE

    def test_highest_priority_wins(self):
        assert primary_role(["Patient", "Doctor"]) == RoleName.DOCTOR
        assert primary_role(["Nurse", "SuperAdmin", "Doctor"]) == RoleName.SUPER_ADMIN
        assert primary_role(["Patient", "Nurse"]) == RoleName.NURSE

    def test_order_of_input_does_not_matter(self):
        assert primary_role(["Doctor", "Nurse"]) == primary_role(["Nurse", "Doctor"])

    def test_no_roles_defaults_to_patient(self):
        assert primary_role([]) == DEFAULT_ROLE == RoleName.PATIENT

    def test_unknown_roles_are_ignored(self):
        assert primary_role(["Auditor"]) == RoleName.PATIENT
        assert primary_role(["Auditor", "Nurse"]) == RoleName.NURSE


class TestPermissionLookup:

    def test_doctor_permissions(self, db):
        doctor = create_doctor(db)

        assert has_permission(db, doctor.user_id, "prescriptions.create")
        assert has_permission(db, doctor.user_id, "patients.view")
        assert not has_permission(db, doctor.user_id, "roles.create")

    def test_nurse_cannot_prescribe(self, db):
        nurse = create_nurse(db)

        assert has_permission(db, nurse.id, "vitals.create")
        assert not has_permission(db, nurse.id, "prescriptions.create")

    def test_patient_role_has_no_permissions(self, db):
        user, _ = create_patient(db)

        assert get_role_names(db, user.id) == ["Patient"]
        assert get_permissions(db, user.id) == []

    def test_permissions_union_across_roles(self, db):
        user = create_user(db, "both@example.com", ["Nurse", "Doctor"])

        assert sorted(get_role_names(db, user.id)) == ["Doctor", "Nurse"]
        permissions = get_permissions(db, user.id)
        assert "prescriptions.create" in permissions
        assert len(permissions) == len(set(permissions))

    def test_super_admin_has_every_permission(self, db):
        admin = create_user(db, "root@example.com", ["SuperAdmin"])

        assert has_permission(db, admin.id, "roles.delete")
        assert has_permission(db, admin.id, "testresults.edit")
