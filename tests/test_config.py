"""
Tests for session options and timeout policy.
"""

import unittest

from tello_config import CONTROL_UDP_PORT, DEFAULT_DRONE_HOST, TelloOptions, TimeoutPolicy
from tello_errors import InvalidArgumentError
from tello_protocol import Command, Verb


class TestTimeoutPolicy(unittest.TestCase):

    def test_flight_commands_wait_longer(self):
        """Test the default mode ceiling exceeds motion and query ceilings."""
        policy = TimeoutPolicy()
        self.assertGreater(policy.for_command(Command.take_off()), policy.for_command(Command.rotate_cw(90)))
        self.assertGreater(policy.for_command(Command.land()), policy.for_command(Command.query(Verb.SPEED_Q)))

    def test_custom_values(self):
        policy = TimeoutPolicy(mode=1.0, motion=2.0, query=3.0)
        self.assertEqual(policy.for_command(Command.connect()), 1.0)
        self.assertEqual(policy.for_command(Command.flip("f")), 2.0)
        self.assertEqual(policy.for_command(Command.query(Verb.BATTERY_Q)), 3.0)

    def test_rejects_non_positive(self):
        with self.assertRaises(InvalidArgumentError):
            TimeoutPolicy(query=0)


class TestTelloOptions(unittest.TestCase):

    def test_defaults(self):
        """Test defaults point at the drone's AP address and any free local port."""
        options = TelloOptions()
        self.assertEqual(options.drone_addr, (DEFAULT_DRONE_HOST, CONTROL_UDP_PORT))
        self.assertEqual(options.local_port, 0)
        self.assertEqual(options.state_port, 8890)

    def test_from_env(self):
        env = {
            "TELLO_IP": "127.0.0.1",
            "TELLO_PORT": "9999",
            "TELLO_LOCAL_PORT": "9000",
            "TELLO_QUERY_TIMEOUT": "0.5",
            "TELLO_WIFI_TIMEOUT": "5",
        }
        options = TelloOptions.from_env(env)
        self.assertEqual(options.drone_addr, ("127.0.0.1", 9999))
        self.assertEqual(options.local_port, 9000)
        self.assertEqual(options.timeouts.query, 0.5)
        self.assertEqual(options.timeouts.mode, TimeoutPolicy().mode)
        self.assertEqual(options.wifi_timeout, 5.0)

    def test_from_empty_env_is_default(self):
        self.assertEqual(TelloOptions.from_env({}), TelloOptions())

    def test_bad_env_value(self):
        with self.assertRaises(InvalidArgumentError):
            TelloOptions.from_env({"TELLO_PORT": "eighty"})
        with self.assertRaises(InvalidArgumentError):
            TelloOptions.from_env({"TELLO_PORT": "70000"})

    def test_bad_ports(self):
        with self.assertRaises(InvalidArgumentError):
            TelloOptions(drone_port=0)
        with self.assertRaises(InvalidArgumentError):
            TelloOptions(local_port=-1)


if __name__ == "__main__":
    unittest.main()
