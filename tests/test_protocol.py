#!/usr/bin/env python3
"""Test suite for the WFS address table.

Tests for:
1. register_protocol() - incoming messages reach subscribers as RemoteParameterChange
2. handle_find_device() - password gate
3. validate_outgoing() - outgoing parameter checks and int->float coercion
"""

from unittest.mock import Mock

import pytest

from wfsctl import protocol
from wfsctl.codec import Float32, Int32, OscMessage, Str
from wfsctl.dispatcher import ParameterDispatcher
from wfsctl.errors import ValidationError
from wfsctl.events import ALL_FAMILIES, ParameterEvents


class Harness:
    """Dispatcher + event bus populated with the WFS address table."""

    def __init__(self, password=None):
        self.password = password
        self.events = ParameterEvents()
        self.dispatcher = ParameterDispatcher()
        protocol.register_protocol(self.dispatcher, self.events, lambda: self.password)
        self.changes = []
        self.events.subscribe(ALL_FAMILIES, self.changes.append)

    def route(self, address, *args):
        return self.dispatcher.route(OscMessage(address, args))


@pytest.fixture
def harness():
    return Harness()


# =============================================================================
# Tests for incoming routing
# =============================================================================

class TestIncoming:

    def test_every_address_is_registered(self, harness):
        assert set(harness.dispatcher.addresses()) == set(protocol.PROTOCOL)

    def test_input_attenuation(self, harness):
        assert harness.route("/remoteInput/attenuation", Int32(3), Float32(-6.0))

        change, = harness.changes
        assert change.address == "/remoteInput/attenuation"
        assert change.target_id == 3
        assert change.values == (-6.0,)
        assert change.family == "remoteInput"
        assert change.parameter == "attenuation"

    def test_attenuation_above_zero_rejected(self, harness):
        assert not harness.route("/remoteInput/attenuation", Int32(3), Float32(5.0))
        assert harness.changes == []

    def test_input_id_out_of_range(self, harness):
        assert not harness.route("/remoteInput/attenuation", Int32(65), Float32(-6.0))
        assert not harness.route("/remoteInput/attenuation", Int32(0), Float32(-6.0))

    def test_input_count_is_global(self, harness):
        assert harness.route("/inputs", Int32(32))

        change, = harness.changes
        assert change.target_id == 0
        assert change.values == (32,)

    def test_position_absolute_and_relative(self, harness):
        assert harness.route("/remoteInput/positionX", Int32(2), Float32(1.5))
        assert harness.route("/remoteInput/positionX", Int32(2), Str("inc"), Float32(0.5))

        assert harness.changes[1].values == ("inc", 0.5)

    def test_position_bad_direction(self, harness):
        assert not harness.route("/remoteInput/offsetY", Int32(2), Str("up"), Float32(0.5))

    def test_array_adjust_steps(self, harness):
        assert harness.route("/arrayAdjust/attenuation", Int32(1), Float32(0.1))
        assert not harness.route("/arrayAdjust/attenuation", Int32(1), Float32(0.5))
        assert not harness.route("/arrayAdjust/attenuation", Int32(6), Float32(1.0))

    def test_cluster_marker(self, harness):
        assert harness.route(protocol.CLUSTER_POSITION_XY, Int32(10), Float32(3.0), Float32(-4.0))
        assert not harness.route(protocol.CLUSTER_POSITION_XY, Int32(11), Float32(3.0), Float32(-4.0))

    def test_stage_shape(self, harness):
        assert harness.route("/stage/shape", Int32(2))
        assert not harness.route("/stage/shape", Int32(3))

    def test_input_name(self, harness):
        assert harness.route(protocol.INPUT_NAME, Int32(4), Str("Choir L"))
        assert harness.changes[0].values == ("Choir L",)

    @pytest.mark.parametrize("address, value", [
        ("/remoteInput/LFOactive", Int32(1)),
        ("/remoteInput/LFOperiod", Float32(2.5)),
        ("/remoteInput/LFOphase", Int32(270)),
        ("/remoteInput/LFOgyrophone", Int32(-1)),
        ("/remoteInput/LFOshapeX", Int32(8)),
        ("/remoteInput/LFOamplitudeY", Float32(12.0)),
        ("/remoteInput/LFOrateZ", Float32(0.5)),
        ("/remoteInput/LFOphaseZ", Int32(90)),
        ("/remoteInput/jitter", Float32(3.0)),
        ("/remoteInput/inputNumber", Int32(3)),
    ])
    def test_lfo_jitter_and_input_number(self, harness, address, value):
        assert harness.route(address, Int32(3), value)
        assert harness.changes[0].values == (value.value,)

    @pytest.mark.parametrize("address, value", [
        ("/remoteInput/LFOactive", Int32(2)),
        ("/remoteInput/LFOperiod", Float32(0.0)),
        ("/remoteInput/LFOphase", Int32(361)),
        ("/remoteInput/LFOgyrophone", Int32(2)),
        ("/remoteInput/LFOshapeY", Int32(9)),
        ("/remoteInput/LFOamplitudeX", Float32(51.0)),
        ("/remoteInput/jitter", Float32(10.5)),
        ("/remoteInput/inputNumber", Int32(65)),
        ("/remoteInput/LFOperiod", Int32(2)),
    ])
    def test_lfo_jitter_and_input_number_rejected(self, harness, address, value):
        assert not harness.route(address, Int32(3), value)
        assert harness.changes == []

    def test_subscriber_family_filter(self):
        events = ParameterEvents()
        dispatcher = ParameterDispatcher()
        protocol.register_protocol(dispatcher, events, lambda: None)
        stage = Mock()
        events.subscribe("stage", stage)

        dispatcher.route(OscMessage("/inputs", (Int32(8),)))
        dispatcher.route(OscMessage("/stage/width", (Float32(12.0),)))

        stage.assert_called_once()
        assert stage.call_args[0][0].address == "/stage/width"


# =============================================================================
# Tests for /findDevice
# =============================================================================

class TestFindDevice:

    def test_no_password_always_triggers(self, harness):
        assert harness.route(protocol.FIND_DEVICE)
        assert harness.route(protocol.FIND_DEVICE, Str("anything"))
        assert len(harness.changes) == 2
        assert harness.changes[0].values == ()

    def test_password_required(self):
        harness = Harness(password="secret")

        assert not harness.route(protocol.FIND_DEVICE)
        assert not harness.route(protocol.FIND_DEVICE, Str("wrong"))
        assert not harness.route(protocol.FIND_DEVICE, Str("SECRET"))
        assert harness.changes == []
        assert harness.dispatcher.stats.get('suppressed_messages') == 3

        assert harness.route(protocol.FIND_DEVICE, Str("secret"))
        assert len(harness.changes) == 1

    def test_password_change_takes_effect(self):
        harness = Harness(password="old")
        harness.password = "new"

        assert not harness.route(protocol.FIND_DEVICE, Str("old"))
        assert harness.route(protocol.FIND_DEVICE, Str("new"))


# =============================================================================
# Tests for validate_outgoing()
# =============================================================================

class TestValidateOutgoing:

    def test_targeted_parameter(self):
        assert protocol.validate_outgoing("/remoteInput/attenuation", 3, [-6.0]) == (Float32(-6.0),)

    def test_int_coerced_for_float_slot(self):
        assert protocol.validate_outgoing("/remoteInput/attenuation", 3, [-6]) == (Float32(-6.0),)

    def test_int_slot_keeps_int(self):
        assert protocol.validate_outgoing("/remoteInput/trackingID", 1, [3]) == (Int32(3),)

    @pytest.mark.parametrize("address, value, expected", [
        ("/remoteInput/LFOperiod", 4, Float32(4.0)),
        ("/remoteInput/LFOactive", 1, Int32(1)),
        ("/remoteInput/jitter", 0.5, Float32(0.5)),
        ("/remoteInput/inputNumber", 3, Int32(3)),
    ])
    def test_lfo_jitter_and_input_number(self, address, value, expected):
        assert protocol.validate_outgoing(address, 3, [value]) == (expected,)

    def test_global_parameter(self):
        assert protocol.validate_outgoing("/stage/width", 0, [10.0]) == (Float32(10.0),)

    def test_global_parameter_with_target(self):
        with pytest.raises(ValidationError):
            protocol.validate_outgoing("/stage/width", 2, [10.0])

    def test_relative_position(self):
        args = protocol.validate_outgoing("/remoteInput/positionY", 1, ["dec", 0.25])
        assert args == (Str("dec"), Float32(0.25))

    def test_unknown_address(self):
        with pytest.raises(ValidationError, match="Unknown"):
            protocol.validate_outgoing("/remoteInput/volume", 1, [0.5])

    def test_out_of_range(self):
        with pytest.raises(ValidationError):
            protocol.validate_outgoing("/remoteInput/attenuation", 3, [5.0])

    def test_bad_target(self):
        with pytest.raises(ValidationError):
            protocol.validate_outgoing("/remoteInput/attenuation", 65, [-6.0])

    def test_bool_value(self):
        with pytest.raises(ValidationError):
            protocol.validate_outgoing("/remoteInput/attenuation", 3, [True])
