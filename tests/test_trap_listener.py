import asyncio
import unittest
from unittest.mock import patch

from pyasn1.codec.ber import encoder
from pysnmp.proto import api

from netmon.errors import TrapDecodeError
from netmon.listeners.trap_listener import (
    SNMPTrapListener, TrapProtocol, decode_trap, normalize_v1, normalize_v2c, v1_trap_oid,
)
from netmon.models.message import TrapMessage
from netmon.snmp import oids

ADDR = ("10.0.0.1", 49152)


def _encode(version, pdu, community="public"):
    p_mod = api.PROTOCOL_MODULES[version]
    message = p_mod.Message()
    p_mod.apiMessage.set_defaults(message)
    p_mod.apiMessage.set_community(message, community)
    p_mod.apiMessage.set_pdu(message, pdu)
    return encoder.encode(message)


def v1_trap(generic, specific=0, enterprise=(1, 3, 6, 1, 4, 1, 9), community="public"):
    p_mod = api.PROTOCOL_MODULES[api.SNMP_VERSION_1]
    pdu = p_mod.TrapPDU()
    p_mod.apiTrapPDU.set_defaults(pdu)
    p_mod.apiTrapPDU.set_enterprise(pdu, enterprise)
    p_mod.apiTrapPDU.set_generic_trap(pdu, generic)
    p_mod.apiTrapPDU.set_specific_trap(pdu, specific)
    p_mod.apiTrapPDU.set_timestamp(pdu, 4200)
    p_mod.apiTrapPDU.set_varbinds(pdu, [("1.3.6.1.2.1.2.2.1.1.2", p_mod.Integer(2))])
    return _encode(api.SNMP_VERSION_1, pdu, community)


def v2c_trap(trap_oid, community="public", enterprise=None):
    p_mod = api.PROTOCOL_MODULES[api.SNMP_VERSION_2C]
    pdu = p_mod.TrapPDU()
    p_mod.apiTrapPDU.set_defaults(pdu)
    varbinds = [
        (oids.SYS_UPTIME, p_mod.TimeTicks(1200)),
        (oids.SNMP_TRAP_OID, p_mod.ObjectIdentifier(trap_oid)),
        ("1.3.6.1.2.1.2.2.1.1.7", p_mod.Integer(7)),
    ]
    if enterprise:
        varbinds.append((oids.SNMP_TRAP_ENTERPRISE, p_mod.ObjectIdentifier(enterprise)))
    p_mod.apiTrapPDU.set_varbinds(pdu, varbinds)
    return _encode(api.SNMP_VERSION_2C, pdu, community)


def v2c_get_request():
    p_mod = api.PROTOCOL_MODULES[api.SNMP_VERSION_2C]
    pdu = p_mod.GetRequestPDU()
    p_mod.apiPDU.set_defaults(pdu)
    p_mod.apiPDU.set_varbinds(pdu, [(oids.SYS_NAME, p_mod.Null(""))])
    return _encode(api.SNMP_VERSION_2C, pdu)


class TestNormalization(unittest.TestCase):
    def test_v1_generic_trap_maps_to_standard_oid(self):
        self.assertEqual(v1_trap_oid("1.3.6.1.4.1.9", 2, 0), "1.3.6.1.6.3.1.1.5.3")
        self.assertEqual(v1_trap_oid("1.3.6.1.4.1.9", 0, 0), "1.3.6.1.6.3.1.1.5.1")

    def test_v1_enterprise_specific(self):
        self.assertEqual(v1_trap_oid("1.3.6.1.4.1.9.9.41.2", 6, 1), "1.3.6.1.4.1.9.9.41.2.0.1")

    def test_normalize_v1(self):
        message = normalize_v1(
            ADDR, "public",
            enterprise="1.3.6.1.4.1.9",
            agent_address="10.0.0.1",
            generic_trap=3,
            specific_trap=0,
            timestamp=4200,
            varbinds=[("1.3.6.1.2.1.2.2.1.1.2", 2)],
        )
        self.assertEqual(message.version, "v1")
        self.assertEqual(message.trap_oid, "1.3.6.1.6.3.1.1.5.4")
        self.assertEqual(message.generic_trap, 3)
        self.assertEqual(message.uptime, 4200)
        self.assertEqual(message.varbinds, {"1.3.6.1.2.1.2.2.1.1.2": 2})

    def test_normalize_v2c(self):
        message = normalize_v2c(ADDR, "public", [
            (oids.SYS_UPTIME, 1200),
            (oids.SNMP_TRAP_OID, "1.3.6.1.6.3.1.1.5.3"),
            ("1.3.6.1.2.1.2.2.1.1.7", 7),
        ])
        self.assertEqual(message.version, "v2c")
        self.assertEqual(message.trap_oid, "1.3.6.1.6.3.1.1.5.3")
        self.assertEqual(message.uptime, 1200)
        self.assertIsNone(message.generic_trap)
        self.assertEqual(message.source_ip, "10.0.0.1")

    def test_normalize_v2c_requires_trap_oid(self):
        with self.assertRaises(TrapDecodeError):
            normalize_v2c(ADDR, "public", [(oids.SYS_UPTIME, 1200)])

    def test_decode_rejects_garbage(self):
        with self.assertRaises(TrapDecodeError):
            decode_trap(b"\x00\x01not-snmp", ADDR)


class TestWireDecoding(unittest.TestCase):
    def test_v1_generic_trap(self):
        message = decode_trap(v1_trap(generic=2), ADDR)

        self.assertEqual(message.version, "v1")
        self.assertEqual(message.community, "public")
        self.assertEqual(message.trap_oid, "1.3.6.1.6.3.1.1.5.3")
        self.assertEqual(message.enterprise_oid, "1.3.6.1.4.1.9")
        self.assertEqual(message.generic_trap, 2)
        self.assertEqual(message.specific_trap, 0)
        self.assertEqual(message.uptime, 4200)
        self.assertEqual(message.varbinds, {"1.3.6.1.2.1.2.2.1.1.2": 2})
        self.assertEqual((message.source_ip, message.source_port), ADDR)

    def test_v1_enterprise_specific_trap(self):
        message = decode_trap(v1_trap(generic=6, specific=1, enterprise=(1, 3, 6, 1, 4, 1, 9, 9, 41, 2)),
                              ADDR)
        self.assertEqual(message.trap_oid, "1.3.6.1.4.1.9.9.41.2.0.1")
        self.assertEqual(message.specific_trap, 1)

    def test_v2c_field_map(self):
        message = decode_trap(v2c_trap("1.3.6.1.6.3.1.1.5.4", enterprise="1.3.6.1.4.1.9"), ADDR)

        self.assertEqual(message.version, "v2c")
        self.assertEqual(message.community, "public")
        self.assertEqual(message.trap_oid, "1.3.6.1.6.3.1.1.5.4")
        self.assertEqual(message.uptime, 1200)
        self.assertEqual(message.enterprise_oid, "1.3.6.1.4.1.9")
        self.assertIsNone(message.generic_trap)
        self.assertEqual(message.varbinds["1.3.6.1.2.1.2.2.1.1.7"], 7)

    def test_v2c_community_is_reported(self):
        message = decode_trap(v2c_trap("1.3.6.1.6.3.1.1.5.1", community="private"), ADDR)
        self.assertEqual(message.community, "private")

    def test_non_trap_pdu_is_rejected(self):
        with self.assertRaises(TrapDecodeError):
            decode_trap(v2c_get_request(), ADDR)


class TestSNMPTrapListener(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.queue = asyncio.Queue()
        self.listener = SNMPTrapListener(self.queue, port=0, host="127.0.0.1", community="public")

    def _message(self, community):
        return TrapMessage(source_ip=ADDR[0], source_port=ADDR[1], community=community,
                           version="v2c", trap_oid="1.3.6.1.6.3.1.1.5.3")

    def test_initialization(self):
        self.assertEqual(self.listener.community, "public")
        self.assertEqual(self.listener.queue, self.queue)
        self.assertFalse(self.listener.is_running)

    def test_matching_community_is_queued(self):
        message = self._message("public")
        with patch("netmon.listeners.trap_listener.decode_trap", return_value=message):
            self.listener.process_data(b"...", ADDR)
        self.assertIs(self.queue.get_nowait(), message)

    def test_community_mismatch_is_dropped(self):
        with patch("netmon.listeners.trap_listener.decode_trap", return_value=self._message("private")):
            with self.assertLogs("netmon.listeners", level="WARNING"):
                self.listener.process_data(b"...", ADDR)
        self.assertTrue(self.queue.empty())
        self.assertEqual(self.listener.dropped, 1)

    def test_malformed_datagram_is_dropped(self):
        with self.assertLogs("netmon.listeners", level="WARNING"):
            self.listener.process_data(b"\xff\xff", ADDR)
        self.assertTrue(self.queue.empty())

    def test_encoded_traps_are_queued(self):
        self.listener.process_data(v1_trap(generic=0), ADDR)
        self.listener.process_data(v2c_trap("1.3.6.1.6.3.1.1.5.3"), ADDR)

        first, second = self.queue.get_nowait(), self.queue.get_nowait()
        self.assertEqual((first.version, first.trap_oid), ("v1", "1.3.6.1.6.3.1.1.5.1"))
        self.assertEqual((second.version, second.trap_oid), ("v2c", "1.3.6.1.6.3.1.1.5.3"))
        self.assertEqual(self.listener.statistics, {"received": 2, "dropped": 0})

    def test_encoded_trap_with_wrong_community_is_dropped(self):
        with self.assertLogs("netmon.listeners", level="WARNING"):
            self.listener.process_data(v2c_trap("1.3.6.1.6.3.1.1.5.3", community="private"), ADDR)
        self.assertTrue(self.queue.empty())
        self.assertEqual(self.listener.dropped, 1)

    def test_get_request_is_dropped(self):
        with self.assertLogs("netmon.listeners", level="WARNING"):
            self.listener.process_data(v2c_get_request(), ADDR)
        self.assertTrue(self.queue.empty())
        self.assertEqual(self.listener.dropped, 1)

    def test_full_queue_drops(self):
        listener = SNMPTrapListener(asyncio.Queue(maxsize=1))
        with patch("netmon.listeners.trap_listener.decode_trap", return_value=self._message("public")):
            listener.process_data(b"...", ADDR)
            listener.process_data(b"...", ADDR)
        self.assertEqual(listener.statistics, {"received": 1, "dropped": 1})

    def test_protocol_forwards_datagrams(self):
        with patch.object(self.listener, "process_data") as process_data:
            TrapProtocol(self.listener).datagram_received(b"data", ADDR)
        process_data.assert_called_once_with(b"data", ADDR)

    async def test_start_and_stop(self):
        await self.listener.start()
        self.assertTrue(self.listener.is_running)
        self.assertIsNotNone(self.listener.transport)

        await self.listener.stop()
        self.assertFalse(self.listener.is_running)
        self.assertIsNone(self.listener.transport)


if __name__ == '__main__':
    unittest.main()
