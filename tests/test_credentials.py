from datetime import datetime, timedelta, timezone
import json
import os
from pathlib import Path
import tempfile
import unittest

from resim.credentials import CredentialCache, TokenRecord, default_cache_path

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class TokenRecordTests(unittest.TestCase):
    def test_usable_until_ten_seconds_before_expiry(self):
        token = TokenRecord("abc", expiry=NOW + timedelta(seconds=11))
        self.assertTrue(token.is_usable(now=NOW))
        self.assertFalse(token.is_usable(now=NOW + timedelta(seconds=1)))

    def test_token_without_expiry_never_expires(self):
        self.assertTrue(TokenRecord("abc").is_usable(now=NOW + timedelta(days=3650)))

    def test_empty_access_token_is_unusable(self):
        self.assertFalse(TokenRecord("").is_usable(now=NOW))

    def test_from_token_response_sets_absolute_expiry(self):
        token = TokenRecord.from_token_response(
            {"access_token": "abc", "token_type": "Bearer", "expires_in": 86400},
            now=NOW,
        )
        self.assertEqual(token.expiry, NOW + timedelta(days=1))
        self.assertIsNone(token.refresh_token)

    def test_dict_roundtrip_preserves_expiry(self):
        token = TokenRecord("abc", expiry=NOW)
        payload = token.to_dict()
        self.assertEqual(payload["expiry"], "2026-01-02T03:04:05Z")
        self.assertEqual(TokenRecord.from_dict(payload), token)


class CredentialCacheTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / ".resim" / "cache.json"

    def test_default_path_is_under_home(self):
        self.assertEqual(default_cache_path(), Path.home() / ".resim" / "cache.json")

    def test_missing_file_starts_empty(self):
        cache = CredentialCache(self.path)
        with self.assertLogs("resim.credentials", level="WARNING") as logs:
            cache.load()
        self.assertEqual(cache.tokens, {})
        self.assertIn("initializing credential cache", logs.output[0])

    def test_corrupt_file_is_ignored(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")
        cache = CredentialCache(self.path)
        with self.assertLogs("resim.credentials", level="WARNING") as logs:
            cache.load()
        self.assertEqual(cache.tokens, {})
        self.assertIn("corrupt", logs.output[0])

    def test_empty_file_is_ignored(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("", encoding="utf-8")
        cache = CredentialCache(self.path)
        with self.assertLogs("resim.credentials", level="WARNING"):
            cache.load()
        self.assertIsNone(cache.token_for("A"))

    def test_unreadable_entry_does_not_drop_the_others(self):
        self.path.parent.mkdir(parents=True)
        bad_entry = {"access_token": "c-token", "expiry": "not-a-date"}
        self.path.write_text(
            json.dumps({"tokens": {"B": {"access_token": "b-token", "expiry": None}, "C": bad_entry}}),
            encoding="utf-8",
        )
        cache = CredentialCache(self.path)
        with self.assertLogs("resim.credentials", level="WARNING") as logs:
            cache.load()
        self.assertEqual(cache.token_for("B"), TokenRecord("b-token"))
        self.assertIsNone(cache.token_for("C"))
        self.assertIn("entry for C", logs.output[0])

        cache.save("A", TokenRecord("a-token"))

        stored = json.loads(self.path.read_text(encoding="utf-8"))["tokens"]
        self.assertEqual(sorted(stored), ["A", "B", "C"])
        self.assertEqual(stored["C"], bad_entry)

    def test_nanosecond_expiry_is_accepted(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(
            json.dumps(
                {
                    "tokens": {
                        "A": {
                            "access_token": "abc",
                            "token_type": "Bearer",
                            "refresh_token": "",
                            "expiry": "2026-10-17T08:25:00.123456789+02:00",
                        }
                    }
                }
            ),
            encoding="utf-8",
        )
        cache = CredentialCache(self.path)
        cache.load()

        self.assertEqual(
            cache.token_for("A").expiry,
            datetime(2026, 10, 17, 6, 25, 0, 123456, tzinfo=timezone.utc),
        )

    def test_short_fraction_expiry_is_accepted(self):
        token = TokenRecord.from_dict({"access_token": "abc", "expiry": "2026-01-02T03:04:05.5Z"})
        self.assertEqual(token.expiry, NOW + timedelta(milliseconds=500))

    def test_save_then_load(self):
        cache = CredentialCache(self.path)
        cache.save("A", TokenRecord("abc", expiry=NOW))

        reloaded = CredentialCache(self.path)
        reloaded.load()
        self.assertEqual(reloaded.token_for("A"), TokenRecord("abc", expiry=NOW))

    def test_save_keeps_other_clients(self):
        cache = CredentialCache(self.path)
        cache.save("A", TokenRecord("a-token"))
        cache.save("B", TokenRecord("b-token"))

        stored = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(sorted(stored["tokens"]), ["A", "B"])
        self.assertEqual(stored["tokens"]["A"]["access_token"], "a-token")
        self.assertIsNone(stored["tokens"]["A"]["expiry"])

    def test_save_restricts_permissions(self):
        if os.name == "nt":
            self.skipTest("Permission mode semantics differ on Windows")
        CredentialCache(self.path).save("A", TokenRecord("abc"))
        self.assertEqual(self.path.stat().st_mode & 0o777, 0o600)

    def test_save_failure_is_logged_not_raised(self):
        blocker = Path(self._tmp.name) / "blocker"
        blocker.write_text("", encoding="utf-8")
        cache = CredentialCache(blocker / "cache.json")
        with self.assertLogs("resim.credentials", level="WARNING") as logs:
            cache.save("A", TokenRecord("abc"))
        self.assertIn("Error saving credential cache", logs.output[0])


if __name__ == "__main__":
    unittest.main()
