import base64
from pathlib import Path
import tempfile
import unittest

from resim.client import ReSimError
from resim.metrics import collect_metrics_files


def _b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


class CollectMetricsFilesTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.metrics_dir = self.root / ".resim" / "metrics"

    def _write(self, relative: str, text: str) -> None:
        path = self.metrics_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    def test_missing_config_points_at_expected_location(self):
        with self.assertRaises(ReSimError) as ctx:
            collect_metrics_files(self.root)
        self.assertEqual(ctx.exception.code, "CONFIG")
        self.assertIn("Are you in the right folder?", ctx.exception.message)
        self.assertIn(str(self.metrics_dir / "config.yml"), ctx.exception.message)

    def test_collects_only_liquid_templates_sorted(self):
        self._write("config.yml", "version: 1\n")
        self._write("templates/b.liquid", "{{ b }}")
        self._write("templates/a.LIQUID", "{{ a }}")
        self._write("templates/notes.txt", "ignore me")
        self._write("templates/nested/c.liquid", "{{ c }}")

        files = collect_metrics_files(self.root)

        self.assertEqual(files.config, _b64("version: 1\n"))
        self.assertEqual(files.template_names, ["a.LIQUID", "b.liquid"])
        self.assertEqual(files.templates[1], {"name": "b.liquid", "contents": _b64("{{ b }}")})

    def test_empty_templates_dir_warns(self):
        self._write("config.yml", "version: 1\n")
        (self.metrics_dir / "templates").mkdir()

        with self.assertLogs("resim.metrics", level="WARNING") as logs:
            files = collect_metrics_files(self.root)

        self.assertEqual(files.templates, [])
        self.assertIn("Found 0 template files", logs.output[0])

    def test_missing_templates_dir_is_config_error(self):
        self._write("config.yml", "version: 1\n")

        with self.assertRaises(ReSimError) as ctx:
            collect_metrics_files(self.root)
        self.assertEqual(ctx.exception.code, "CONFIG")


if __name__ == "__main__":
    unittest.main()
