"""
Tests for the command vocabulary and wire codec.
"""

import unittest

from tello_errors import InvalidArgumentError, ProtocolError
from tello_protocol import (
    Command,
    CommandFamily,
    Direction,
    FlipDirection,
    Reply,
    ReplyKind,
    Verb,
    decode,
    encode,
    parse_fields,
    parse_float,
    parse_int,
    parse_range,
)


class TestEncode(unittest.TestCase):
    """Test rendering commands to SDK strings."""

    def test_bare_commands(self):
        """Test commands without arguments encode to their verb."""
        self.assertEqual(encode(Command.connect()), b"command")
        self.assertEqual(encode(Command.take_off()), b"takeoff")
        self.assertEqual(encode(Command.land()), b"land")
        self.assertEqual(encode(Command.emergency()), b"emergency")
        self.assertEqual(encode(Command.stop()), b"stop")
        self.assertEqual(encode(Command.query(Verb.SPEED_Q)), b"speed?")

    def test_rotation(self):
        """Test rotation encodes as '<verb> <degrees>'."""
        self.assertEqual(encode(Command.rotate_cw(360)), b"cw 360")
        self.assertEqual(encode(Command.rotate_ccw(1)), b"ccw 1")

    def test_move_every_direction(self):
        """Test each move direction uses its own verb."""
        for direction in Direction:
            with self.subTest(direction=direction):
                self.assertEqual(encode(Command.move(direction, 20)), f"{direction.value} 20".encode())

    def test_move_accepts_plain_strings(self):
        """Test directions can be given as strings."""
        self.assertEqual(encode(Command.move("forward", 500)), b"forward 500")

    def test_flip_and_speed(self):
        """Test flip letters and speed values."""
        self.assertEqual(encode(Command.flip(FlipDirection.BACK)), b"flip b")
        self.assertEqual(encode(Command.flip("l")), b"flip l")
        self.assertEqual(encode(Command.set_speed(10)), b"speed 10")

    def test_no_trailing_whitespace(self):
        """Test the wire string has single spaces and no padding."""
        wire = encode(Command.move(Direction.UP, 123)).decode()
        self.assertEqual(wire, wire.strip())
        self.assertNotIn("  ", wire)

    def test_encode_does_not_mutate(self):
        """Test encoding leaves the command's arguments untouched."""
        cmd = Command.rotate_cw(90)
        encode(cmd)
        self.assertEqual(cmd.args, (90,))


class TestValidation(unittest.TestCase):
    """Test parameter ranges are enforced, never clamped."""

    def test_rotation_bounds(self):
        """Test 1 and 360 pass, 0 and 361 fail."""
        encode(Command.rotate_cw(1))
        encode(Command.rotate_cw(360))
        for bad in (0, 361, -90):
            with self.subTest(degrees=bad):
                with self.assertRaises(InvalidArgumentError):
                    encode(Command.rotate_cw(bad))

    def test_distance_bounds(self):
        """Test moves outside 20-500 cm fail."""
        for bad in (19, 501):
            with self.assertRaises(InvalidArgumentError):
                encode(Command.move(Direction.LEFT, bad))

    def test_speed_bounds(self):
        """Test speeds outside 10-100 cm/s fail."""
        for bad in (9, 101):
            with self.assertRaises(InvalidArgumentError):
                encode(Command.set_speed(bad))

    def test_non_integer_arguments(self):
        """Test floats and bools are rejected."""
        with self.assertRaises(InvalidArgumentError):
            encode(Command.rotate_cw(90.5))
        with self.assertRaises(InvalidArgumentError):
            encode(Command.set_speed(True))

    def test_unknown_directions(self):
        """Test unknown direction names fail at construction."""
        with self.assertRaises(InvalidArgumentError):
            Command.move("sideways", 50)
        with self.assertRaises(InvalidArgumentError):
            Command.flip("x")

    def test_extra_arguments(self):
        """Test argument counts are checked."""
        with self.assertRaises(InvalidArgumentError):
            encode(Command(Verb.TAKEOFF, (1,)))
        with self.assertRaises(InvalidArgumentError):
            encode(Command(Verb.CW, (90, 90)))

    def test_invalid_argument_is_value_error(self):
        """Test the error also reads as a ValueError."""
        with self.assertRaises(ValueError):
            encode(Command.rotate_cw(361))

    def test_query_needs_query_verb(self):
        """Test Command.query refuses action verbs."""
        with self.assertRaises(InvalidArgumentError):
            Command.query(Verb.LAND)


class TestFamilies(unittest.TestCase):
    """Test commands are grouped for timeout selection."""

    def test_families(self):
        self.assertIs(Command.connect().family, CommandFamily.MODE)
        self.assertIs(Command.take_off().family, CommandFamily.MODE)
        self.assertIs(Command.rotate_cw(90).family, CommandFamily.MOTION)
        self.assertIs(Command.stop().family, CommandFamily.MOTION)
        self.assertIs(Command.query(Verb.BATTERY_Q).family, CommandFamily.QUERY)

    def test_is_query(self):
        self.assertTrue(Command.query(Verb.SPEED_Q).is_query)
        self.assertFalse(Command.set_speed(50).is_query)


class TestDecode(unittest.TestCase):
    """Test parsing reply datagrams."""

    def test_ok_any_case(self):
        """Test 'ok' is an ACK regardless of case and padding."""
        for raw in (b"ok", b"OK", b" Ok\r\n", b"ok\x00\x00"):
            with self.subTest(raw=raw):
                self.assertEqual(decode(raw), Reply.ack())

    def test_error_with_reason(self):
        """Test the remainder after 'error' becomes the reason."""
        reply = decode(b"error Motor stop")
        self.assertIs(reply.kind, ReplyKind.ERROR)
        self.assertEqual(reply.reason, "Motor stop")
        self.assertEqual(decode(b"error:No valid imu").reason, "No valid imu")

    def test_bare_error(self):
        reply = decode(b"error")
        self.assertIs(reply.kind, ReplyKind.ERROR)
        self.assertEqual(reply.reason, "")

    def test_value_for_query(self):
        """Test queries get the trimmed text back."""
        self.assertEqual(decode(b"15\r\n", query=True), Reply(ReplyKind.VALUE, "15"))

    def test_unexpected_text_for_action(self):
        """Test non-query commands only accept ok/error."""
        with self.assertRaises(ProtocolError):
            decode(b"15")

    def test_noise(self):
        """Test datagrams that trim to nothing are reported as noise."""
        self.assertIsNone(decode(b"\x00\r\n"))
        self.assertIsNone(decode(b"\xff\xfe", query=True))


class TestValueParsers(unittest.TestCase):
    """Test typed parsing of query replies."""

    def test_parse_int(self):
        self.assertEqual(parse_int("82"), 82)
        self.assertEqual(parse_int("15.0"), 15)
        self.assertEqual(parse_int("12s", unit="s"), 12)
        self.assertEqual(parse_int("10dm", unit="dm"), 10)

    def test_parse_int_rejects_garbage(self):
        for bad in ("abc", "1.5", ""):
            with self.assertRaises(ProtocolError):
                parse_int(bad)

    def test_parse_float(self):
        self.assertEqual(parse_float("15"), 15.0)
        self.assertAlmostEqual(parse_float("-57.14"), -57.14)
        with self.assertRaises(ProtocolError):
            parse_float("fast")

    def test_parse_range(self):
        self.assertEqual(parse_range("63~65C", unit="c"), (63, 65))
        self.assertEqual(parse_range("60"), (60, 60))

    def test_parse_fields(self):
        self.assertEqual(
            parse_fields("pitch:0;roll:2;yaw:-3;"),
            {"pitch": "0", "roll": "2", "yaw": "-3"},
        )
        with self.assertRaises(ProtocolError):
            parse_fields("pitch0;")


if __name__ == "__main__":
    unittest.main()
