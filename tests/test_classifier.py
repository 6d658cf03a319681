import unittest
from datetime import datetime, timedelta, UTC

from netmon.models.message import AlertType, Severity, TrapType
from netmon.processors import classifier


class TestClassifier(unittest.TestCase):
    def test_hash_key_is_stable_within_bucket(self):
        start = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        key = classifier.compute_hash_key("10.0.0.1", "1.3.6.1.6.3.1.1.5.3", start)

        self.assertEqual(key, classifier.compute_hash_key(
            "10.0.0.1", "1.3.6.1.6.3.1.1.5.3", start + timedelta(minutes=4, seconds=59)))
        self.assertNotEqual(key, classifier.compute_hash_key(
            "10.0.0.1", "1.3.6.1.6.3.1.1.5.3", start + timedelta(minutes=5)))
        self.assertNotEqual(key, classifier.compute_hash_key("10.0.0.2", "1.3.6.1.6.3.1.1.5.3", start))
        self.assertEqual(len(key), 32)

    def test_generic_codes_win(self):
        self.assertEqual(classifier.classify_type(None, 0), TrapType.COLD_START)
        self.assertEqual(classifier.classify_type("1.3.6.1.4.1.9.0.1", 4), TrapType.AUTHENTICATION_FAILURE)
        self.assertEqual(classifier.classify_type("1.3.6.1.4.1.9.0.1", 6), TrapType.ENTERPRISE_SPECIFIC)

    def test_standard_notification_oids(self):
        self.assertEqual(classifier.classify_type("1.3.6.1.6.3.1.1.5.1"), TrapType.COLD_START)
        self.assertEqual(classifier.classify_type("1.3.6.1.6.3.1.1.5.3"), TrapType.LINK_DOWN)
        self.assertEqual(classifier.classify_type("1.3.6.1.6.3.1.1.5.4"), TrapType.LINK_UP)

    def test_keyword_fallback(self):
        self.assertEqual(classifier.classify_type("ciscoEnvMonFanNotification"), TrapType.FAN_FAILURE)
        self.assertEqual(classifier.classify_type("ciscoConfigManEvent"), TrapType.CONFIGURATION_CHANGE)
        self.assertEqual(classifier.classify_type("hrTemperatureAlarm"), TrapType.TEMPERATURE_ALARM)
        self.assertEqual(classifier.classify_type("1.3.6.1.4.1.99999.1"), TrapType.UNKNOWN)
        self.assertEqual(classifier.classify_type(""), TrapType.UNKNOWN)

    def test_severity_table(self):
        self.assertEqual(classifier.classify_severity(TrapType.COLD_START), Severity.CRITICAL)
        self.assertEqual(classifier.classify_severity(TrapType.LINK_DOWN), Severity.MAJOR)
        self.assertEqual(classifier.classify_severity(TrapType.CPU_HIGH), Severity.MINOR)
        self.assertEqual(classifier.classify_severity(TrapType.LINK_UP), Severity.WARNING)
        self.assertEqual(classifier.classify_severity(TrapType.UNKNOWN), Severity.INFO)

    def test_alert_cutoff_is_minor(self):
        self.assertTrue(classifier.requires_alert(Severity.CRITICAL))
        self.assertTrue(classifier.requires_alert(Severity.MINOR))
        self.assertFalse(classifier.requires_alert(Severity.WARNING))
        self.assertFalse(classifier.requires_alert(Severity.INFO))

    def test_alert_type_mapping(self):
        self.assertEqual(classifier.alert_type_for(TrapType.LINK_DOWN), AlertType.INTERFACE_DOWN)
        self.assertEqual(classifier.alert_type_for(TrapType.MEMORY_LOW), AlertType.PERFORMANCE)
        self.assertEqual(classifier.alert_type_for(TrapType.UNKNOWN), AlertType.CONNECTIVITY)


if __name__ == '__main__':
    unittest.main()
