"""
Wire Schema Tests
=================
"""

import json

import pytest
from pydantic import ValidationError

from screen_relay.models.wire import FrameMessage, Role, connection_url


class TestRole:

    @pytest.mark.parametrize("value,role", [
        ("producer", Role.PRODUCER),
        ("consumer", Role.CONSUMER),
        ("", Role.PASSTHROUGH),
        ("viewer", Role.PASSTHROUGH),
        ("PRODUCER", Role.PASSTHROUGH),
    ])
    def test_parse(self, value, role):
        assert Role.parse(value) is role


class TestFrameMessage:

    def test_wire_field_names(self):
        message = FrameMessage(data="abc=", timestamp=1707321234567, frame_id=42)
        assert json.loads(message.to_wire()) == {
            "type": "frame",
            "data": "abc=",
            "timestamp": 1707321234567,
            "frameId": 42,
        }

    def test_parses_wire_names(self):
        message = FrameMessage.model_validate(
            {"type": "frame", "data": "x", "timestamp": 5, "frameId": 3}
        )
        assert message.frame_id == 3

    def test_frame_id_is_one_based(self):
        with pytest.raises(ValidationError):
            FrameMessage(data="x", timestamp=5, frame_id=0)

    def test_missing_fields_rejected(self):
        with pytest.raises(ValidationError):
            FrameMessage.model_validate({"type": "frame", "data": "x"})


class TestConnectionUrl:

    def test_adds_role_and_token(self):
        assert connection_url("ws://10.0.0.5:3001", Role.CONSUMER, "abc") == \
            "ws://10.0.0.5:3001?role=consumer&token=abc"

    def test_keeps_path_and_existing_query(self):
        url = connection_url("ws://host:3001/ws?debug=1&token=old", Role.PRODUCER, "new")
        assert url == "ws://host:3001/ws?debug=1&token=new&role=producer"
