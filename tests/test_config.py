import os
from pathlib import Path
import tempfile
import unittest
from unittest.mock import patch

from resim.client import ReSimError
from resim.config import (
    DEFAULT_API_URL,
    DEFAULT_TIMEOUT,
    env_name,
    load_file_config,
    resolve_settings,
)

_CLEAN_ENV = {
    "RESIM_URL": "",
    "RESIM_AUTH_URL": "",
    "RESIM_CLIENT_ID": "",
    "RESIM_CLIENT_SECRET": "",
    "RESIM_BFF_URL": "",
    "RESIM_TIMEOUT": "",
    "RESIM_VERBOSE": "",
}


class ConfigTests(unittest.TestCase):
    def test_env_name(self):
        self.assertEqual(env_name("auth-url"), "RESIM_AUTH_URL")
        self.assertEqual(env_name("client-secret"), "RESIM_CLIENT_SECRET")

    def test_defaults(self):
        with patch.dict(os.environ, _CLEAN_ENV):
            settings = resolve_settings(file_config={})
        self.assertEqual(settings.url, DEFAULT_API_URL)
        self.assertEqual(settings.timeout, DEFAULT_TIMEOUT)
        self.assertFalse(settings.verbose)
        self.assertEqual(settings.client_id, "")

    def test_flag_beats_env_beats_file(self):
        file_config = {"client-id": "from-file", "client-secret": "file-secret", "url": "https://file.test/v1/"}
        env = dict(_CLEAN_ENV, RESIM_CLIENT_ID="from-env", RESIM_URL="https://env.test/v1/")
        with patch.dict(os.environ, env):
            settings = resolve_settings(client_id="from-flag", file_config=file_config)

        self.assertEqual(settings.client_id, "from-flag")
        self.assertEqual(settings.url, "https://env.test/v1/")
        self.assertEqual(settings.client_secret, "file-secret")

    def test_env_verbose_and_timeout_are_parsed(self):
        with patch.dict(os.environ, dict(_CLEAN_ENV, RESIM_VERBOSE="true", RESIM_TIMEOUT="12.5")):
            settings = resolve_settings(file_config={})
        self.assertTrue(settings.verbose)
        self.assertEqual(settings.timeout, 12.5)

    def test_bad_timeout_is_config_error(self):
        for raw in ("soon", "0", "301"):
            with self.subTest(timeout=raw), patch.dict(os.environ, dict(_CLEAN_ENV, RESIM_TIMEOUT=raw)):
                with self.assertRaises(ReSimError) as ctx:
                    resolve_settings(file_config={})
                self.assertEqual(ctx.exception.code, "CONFIG")

    def test_auth_config_requires_credentials(self):
        with patch.dict(os.environ, _CLEAN_ENV):
            settings = resolve_settings(client_id="A", file_config={})
        with self.assertRaises(ReSimError) as ctx:
            settings.auth_config()
        self.assertEqual(ctx.exception.message, "client-secret must be specified")

    def test_load_file_config(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "resim.yaml"
            self.assertEqual(load_file_config(path), {})

            path.write_text("client-id: yaml-id\ntimeout: 45\n", encoding="utf-8")
            self.assertEqual(load_file_config(path), {"client-id": "yaml-id", "timeout": 45})

            path.write_text("- just\n- a list\n", encoding="utf-8")
            with self.assertRaises(ReSimError):
                load_file_config(path)

            path.write_text("client-id: [unclosed\n", encoding="utf-8")
            with self.assertRaises(ReSimError) as ctx:
                load_file_config(path)
            self.assertIn("Invalid YAML", ctx.exception.message)


if __name__ == "__main__":
    unittest.main()
