from datetime import datetime

import pytest

from clinic.core.exceptions import ConflictError, ForbiddenError
from clinic.core.security import Actor
from clinic.models.consultation import Consultation, ConsultationStatus as S
from clinic.models.doctor import Doctor
from clinic.services.lifecycle import (
    TERMINAL_STATES, allowed_targets, apply_transition, can_transition
)

DOCTOR_USER_ID = 10
PATIENT_RECORD_ID = 5

assigned_doctor = Actor(id=DOCTOR_USER_ID, roles=frozenset({"Doctor"}))
other_doctor = Actor(id=11, roles=frozenset({"Doctor"}))
admin = Actor(id=1, roles=frozenset({"SuperAdmin"}))
owning_patient = Actor(id=20, roles=frozenset({"Patient"}), patient_record_id=PATIENT_RECORD_ID)
other_patient = Actor(id=21, roles=frozenset({"Patient"}), patient_record_id=6)
nurse = Actor(id=30, roles=frozenset({"Nurse"}))


def make_consultation(status=S.PENDING):
    consultation = Consultation(
        patient_record_id=PATIENT_RECORD_ID,
        doctor_id=1,
        scheduled_at=datetime(2030, 1, 7, 9, 0),
        duration_minutes=30,
        status=status,
    )
    consultation.doctor = Doctor(id=1, user_id=DOCTOR_USER_ID, full_name="Dr. Ada Grey")
    return consultation


class TestTransitionTable:

    def test_forward_path(self):
        assert can_transition(S.PENDING, S.CONFIRMED)
        assert can_transition(S.CONFIRMED, S.IN_PROGRESS)
        assert can_transition(S.IN_PROGRESS, S.COMPLETED)

    def test_forward_jumps_allowed(self):
        assert can_transition(S.PENDING, S.COMPLETED)

    def test_no_backward_moves(self):
        assert not can_transition(S.CONFIRMED, S.PENDING)
        assert not can_transition(S.IN_PROGRESS, S.CONFIRMED)

    @pytest.mark.parametrize("status", [S.PENDING, S.CONFIRMED, S.IN_PROGRESS])
    def test_side_exits_from_open_states(self, status):
        assert can_transition(status, S.CANCELLED)
        assert can_transition(status, S.NO_SHOW)

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATES))
    def test_terminal_states_are_final(self, status):
        assert allowed_targets(status) == frozenset()

    def test_no_show_can_only_be_cancelled(self):
        assert allowed_targets(S.NO_SHOW) == frozenset({S.CANCELLED})

    def test_same_status_is_not_a_transition(self):
        for status in S:
            assert not can_transition(status, status)


class TestApplyTransition:

    def test_complete_sets_completed_at(self):
        consultation = make_consultation(S.IN_PROGRESS)
        now = datetime(2030, 1, 7, 9, 30)

        old = apply_transition(assigned_doctor, consultation, S.COMPLETED, now=now)

        assert old == S.IN_PROGRESS
        assert consultation.status == S.COMPLETED
        assert consultation.completed_at == now
        assert consultation.updated_at == now

    def test_completed_cannot_go_back_to_pending(self):
        consultation = make_consultation(S.COMPLETED)
        with pytest.raises(ConflictError):
            apply_transition(assigned_doctor, consultation, S.PENDING)
        assert consultation.status == S.COMPLETED

    def test_cancelled_is_terminal(self):
        consultation = make_consultation(S.CANCELLED)
        with pytest.raises(ConflictError):
            apply_transition(admin, consultation, S.CONFIRMED)

    def test_admin_may_move_any_consultation(self):
        consultation = make_consultation()
        apply_transition(admin, consultation, S.CONFIRMED)
        assert consultation.status == S.CONFIRMED

    def test_other_doctor_cannot_confirm(self):
        with pytest.raises(ForbiddenError):
            apply_transition(other_doctor, make_consultation(), S.CONFIRMED)

    def test_patient_cannot_confirm_own_consultation(self):
        with pytest.raises(ForbiddenError):
            apply_transition(owning_patient, make_consultation(), S.CONFIRMED)

    def test_owning_patient_may_cancel(self):
        consultation = make_consultation(S.CONFIRMED)
        apply_transition(owning_patient, consultation, S.CANCELLED)
        assert consultation.status == S.CANCELLED
        assert consultation.completed_at is None

    def test_other_patient_cannot_cancel(self):
        with pytest.raises(ForbiddenError):
            apply_transition(other_patient, make_consultation(), S.CANCELLED)

    def test_nurse_cannot_cancel(self):
        with pytest.raises(ForbiddenError):
            apply_transition(nurse, make_consultation(), S.CANCELLED)

    def test_assigned_doctor_marks_no_show(self):
        consultation = make_consultation(S.CONFIRMED)
        apply_transition(assigned_doctor, consultation, S.NO_SHOW)
        assert consultation.status == S.NO_SHOW
