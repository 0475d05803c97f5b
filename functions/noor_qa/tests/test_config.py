import os
import unittest
from unittest.mock import patch

from noor_qa.config import ConfigurationError, load_settings

BASE_ENV = {
    "ADMIN_PASSWORD": "pw",
    "SESSION_SECRET": "secret",
    "STORE_BACKEND": "redis",
    "REDIS_URL": "redis://cache:6379/0",
}


class SettingsTests(unittest.TestCase):
    def _load(self, env):
        with patch.dict(os.environ, env, clear=True):
            return load_settings(_env_file=None)

    def test_loads_from_environment_with_defaults(self):
        settings = self._load(BASE_ENV)
        self.assertEqual(settings.admin_password.get_secret_value(), "pw")
        self.assertEqual(settings.session_max_age, 8 * 60 * 60)
        self.assertEqual(settings.login_rate_limit, 10)
        self.assertEqual(settings.login_rate_window, 15 * 60)
        self.assertEqual(settings.api_prefix, "/api")

    def test_missing_required_values_are_fatal(self):
        for name in ("ADMIN_PASSWORD", "SESSION_SECRET", "STORE_BACKEND"):
            env = {k: v for k, v in BASE_ENV.items() if k != name}
            with self.subTest(missing=name), self.assertRaises(ConfigurationError):
                self._load(env)

    def test_blank_secret_is_fatal(self):
        with self.assertRaises(ConfigurationError):
            self._load({**BASE_ENV, "SESSION_SECRET": "   "})

    def test_backend_parameters_are_required(self):
        env = {k: v for k, v in BASE_ENV.items() if k != "REDIS_URL"}
        with self.assertRaises(ConfigurationError):
            self._load(env)
        with self.assertRaisesRegex(ConfigurationError, "COS_BUCKET"):
            self._load({**BASE_ENV, "STORE_BACKEND": "cos", "COS_REGION": "ap-guangzhou"})

    def test_same_site_none_forces_secure_cookie(self):
        settings = self._load(
            {**BASE_ENV, "SESSION_SAME_SITE": "none", "SESSION_HTTPS_ONLY": "false"}
        )
        self.assertTrue(settings.cookie_secure)
        settings = self._load({**BASE_ENV, "SESSION_HTTPS_ONLY": "false"})
        self.assertFalse(settings.cookie_secure)


if __name__ == "__main__":
    unittest.main()
