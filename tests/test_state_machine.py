"""Tests for the session state machine."""

import pytest

from dialogue_router.conversation.state_machine import (
    CLIENT_KEYS,
    TRANSITIONS,
    InvalidTransitionError,
    Session,
    SessionState,
    StateChange,
    TransitionTrigger,
    get_valid_triggers,
    next_state,
)

from tests.conftest import authenticated_context, make_session

S = SessionState
T = TransitionTrigger


class TestInitialState:
    def test_starts_in_idle(self):
        assert Session(key="51987654321").state == S.IDLE

    def test_initial_trace_has_one_entry(self):
        assert Session(key="51987654321").get_state_trace() == ["idle"]

    def test_context_starts_empty(self):
        session = Session(key="51987654321")
        assert session.context == {}
        assert not session.authenticated
        assert session.pending_order_id is None


class TestTransitionTable:
    def test_client_check_from_idle(self):
        assert next_state(S.IDLE, T.CLIENT_CHECK) == S.AWAITING_CLIENT_CONFIRMATION

    def test_client_found_goes_to_password(self):
        assert next_state(S.AWAITING_PHONE, T.CLIENT_FOUND) == S.AWAITING_PASSWORD

    def test_authenticated_with_order_goes_to_payment(self):
        assert next_state(S.AWAITING_PASSWORD, T.AUTHENTICATED_WITH_ORDER) == S.AWAITING_PAYMENT_METHOD

    def test_registration_chain(self):
        state = next_state(S.IDLE, T.REGISTRATION_STARTED)
        for expected in (S.AWAITING_REG_DNI, S.AWAITING_REG_EMAIL, S.AWAITING_REG_PASSWORD):
            state = next_state(state, T.FIELD_ACCEPTED)
            assert state == expected
        assert next_state(state, T.REGISTRATION_FINISHED) == S.IDLE

    def test_guest_chain(self):
        state = next_state(S.IDLE, T.GUEST_ORDER_STARTED)
        state = next_state(state, T.FIELD_ACCEPTED)
        assert state == S.AWAITING_TEMP_DNI
        assert next_state(state, T.GUEST_DATA_COMPLETE) == S.IDLE

    @pytest.mark.parametrize("state", list(SessionState))
    def test_every_state_can_be_abandoned(self, state):
        assert next_state(state, T.USER_CANCELLED) == S.IDLE

    def test_invalid_trigger_raises(self):
        with pytest.raises(InvalidTransitionError, match="field_accepted"):
            next_state(S.IDLE, T.FIELD_ACCEPTED)

    def test_flows_only_open_from_idle(self):
        with pytest.raises(InvalidTransitionError):
            next_state(S.AWAITING_REG_DNI, T.CLIENT_CHECK)

    def test_valid_triggers_from_cancel_confirmation(self):
        assert set(get_valid_triggers(S.AWAITING_CANCEL_CONFIRMATION)) == {
            T.CANCEL_RESOLVED, T.USER_CANCELLED,
        }

    def test_table_has_no_conflicting_entries(self):
        seen = {}
        for t in TRANSITIONS:
            key = (t.from_state, t.trigger)
            assert seen.setdefault(key, t.to_state) == t.to_state


class TestSessionApply:
    def test_trigger_moves_state_and_records_trace(self):
        session = make_session()
        session.apply(StateChange(T.CLIENT_CHECK))
        assert session.state == S.AWAITING_CLIENT_CONFIRMATION
        assert session.get_state_trace() == ["idle", "awaiting_client_confirmation"]

    def test_context_patch_without_trigger_keeps_state(self):
        session = make_session(state=S.AWAITING_SMS_CODE)
        session.apply(StateChange(context={"_sms_attempts": 1}))
        assert session.state == S.AWAITING_SMS_CODE
        assert session.context["_sms_attempts"] == 1

    def test_none_values_remove_keys(self):
        session = make_session(pedido_id=1001)
        session.apply(StateChange(context={"pedido_id": None}))
        assert "pedido_id" not in session.context

    def test_clear_removes_listed_keys(self):
        session = make_session(state=S.AWAITING_CANCEL_CONFIRMATION, _pedido_a_cancelar=1001)
        session.apply(StateChange(T.CANCEL_RESOLVED, clear=("_pedido_a_cancelar",)))
        assert session.state == S.IDLE
        assert "_pedido_a_cancelar" not in session.context

    def test_invalid_trigger_leaves_session_untouched(self):
        session = make_session(_reg_nombre="Ana")
        with pytest.raises(InvalidTransitionError):
            session.apply(StateChange(T.FIELD_ACCEPTED, context={"_reg_dni": "12345678"}, reset=True))
        assert session.state == S.IDLE
        assert session.context == {"_reg_nombre": "Ana"}
        assert session.get_state_trace() == ["idle"]


class TestReset:
    def test_reset_clears_flow_data_and_guest_identity(self):
        session = make_session(
            state=S.AWAITING_REG_EMAIL,
            _reg_nombre="Ana", _reg_dni="12345678", _client_name="Ana", _client_id=1,
        )
        session.apply(StateChange(T.USER_CANCELLED, reset=True))
        assert session.state == S.IDLE
        for key in ("_reg_nombre", "_reg_dni") + CLIENT_KEYS:
            assert key not in session.context

    def test_reset_keeps_authenticated_identity(self):
        session = make_session(state=S.AWAITING_UPDATE_EMAIL, _updating_field="email", **authenticated_context())
        session.apply(StateChange(T.USER_CANCELLED, reset=True))
        assert session.authenticated
        assert session.context["_client_name"] == "Ana Torres"
        assert "_updating_field" not in session.context

    def test_reset_keeps_pending_order(self):
        session = make_session(state=S.AWAITING_TEMP_NAME, pedido_id=1001)
        session.apply(StateChange(T.USER_CANCELLED, reset=True))
        assert session.pending_order_id == 1001


class TestAccessors:
    def test_guest_data(self):
        session = make_session(_temp_nombre="Rosa Díaz", _temp_dni="71234567")
        assert session.has_guest_data
        assert session.client_name == "Rosa Díaz"

    def test_client_name_prefers_account(self):
        session = make_session(_client_name="Ana Torres", _temp_nombre="Otra")
        assert session.client_name == "Ana Torres"
