import contextlib
import io
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from PIL import Image

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import badge_maker
import config
from badge_renderer import BadgeRenderError
from badge_store import InMemoryBadgeStore
from render_session import RenderSession
from template_layout import BackVariant, resolve_back_template, resolve_front_template

SMALL_FRONT = {
    "id": "t-small",
    "width": 200,
    "height": 320,
    "photo_x": 50,
    "photo_y": 20,
    "photo_w": 100,
    "photo_h": 120,
    "photo_radius": 10,
    "name_x": 20,
    "name_y": 160,
    "name_w": 160,
    "name_h": 40,
    "name_min_size": 8,
    "role_x": 20,
    "role_y": 210,
    "role_w": 160,
    "role_h": 30,
    "role_min_size": 8,
}


class BadgeMakerTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)
        self.photo = self.tmp / "maria.png"
        Image.new("RGB", (60, 80), (90, 90, 90)).save(self.photo)
        self.template_path = self.tmp / "front.json"
        self.template_path.write_text(json.dumps(SMALL_FRONT), encoding="utf-8")


class GenerateBadgesFromCsvTests(BadgeMakerTestCase):
    def test_rows_are_counted_as_generated_skipped_or_failed(self):
        csv_path = self.tmp / "roster.csv"
        csv_path.write_text(
            "Nome,Função,Foto\n"
            "Maria Silva,Professora,maria.png\n"
            "João Souza,Diretor,\n"
            "Ana Lima,Secretária,missing.png\n",
            encoding="utf-8",
        )
        output_root = self.tmp / "out"

        summary = badge_maker.generate_badges_from_csv(
            csv_path,
            front_template=resolve_front_template(SMALL_FRONT),
            back_template=resolve_back_template(None, BackVariant.RICH),
            output_root=output_root,
            photo_root=self.tmp,
            pdf=True,
        )

        self.assertEqual(summary, badge_maker.BatchSummary(generated=1, skipped=1, failed=1))
        badge_dir = output_root / "maria-silva"
        self.assertTrue((badge_dir / "cracha-frente-maria-silva.png").exists())
        self.assertTrue((badge_dir / "cracha-verso-maria-silva.png").exists())
        self.assertTrue((badge_dir / "cracha-maria-silva.pdf").exists())
        self.assertFalse((output_root / "ana-lima").exists())

    def test_unwritable_output_fails_one_row_and_continues(self):
        output_root = self.tmp / "out"
        output_root.mkdir()
        # A plain file where the badge directory should go.
        (output_root / "joao-souza").write_text("", encoding="utf-8")
        records = [
            {"full_name": "João Souza", "role": "Diretor", "photo": str(self.photo)},
            {"full_name": "Maria Silva", "role": "Professora", "photo": str(self.photo)},
        ]

        summary = badge_maker.generate_badges(
            records,
            front_template=resolve_front_template(SMALL_FRONT),
            back_template=None,
            output_root=output_root,
            pdf=False,
        )

        self.assertEqual(summary, badge_maker.BatchSummary(generated=1, skipped=0, failed=1))
        self.assertTrue((output_root / "maria-silva" / "cracha-frente-maria-silva.png").exists())

    def test_front_only_batch(self):
        outputs = badge_maker.personalize_badge(
            {"full_name": "Maria Silva", "role": "Professora", "photo": str(self.photo)},
            front_template=resolve_front_template(SMALL_FRONT),
            back_template=None,
            output_root=self.tmp / "out",
            pdf=False,
        )

        self.assertIsNone(outputs.back_png)
        self.assertIsNone(outputs.pdf)
        self.assertEqual(Image.open(outputs.front_png).size, (200, 320))


class RosterColumnTests(unittest.TestCase):
    def test_first_filled_column_wins(self):
        record = {"full_name": float("nan"), "name": "  ", "nome": " Ana Lima "}

        self.assertEqual(badge_maker._first_value(record, ("full_name", "name", "nome")), "Ana Lima")
        self.assertEqual(badge_maker._first_value({"foto": None}, ("photo", "foto")), "")


class TemplateFileTests(BadgeMakerTestCase):
    def test_template_file_must_hold_an_object(self):
        path = self.tmp / "bad.json"
        path.write_text("[1, 2]", encoding="utf-8")

        self.assertEqual(badge_maker.load_template_file(self.template_path)["width"], 200)
        with self.assertRaises(ValueError):
            badge_maker.load_template_file(path)


class SaveToHistoryTests(BadgeMakerTestCase):
    def test_faces_are_uploaded_and_history_row_saved(self):
        store = InMemoryBadgeStore()
        front = RenderSession("front")
        front.render_front(SMALL_FRONT, self.photo.read_bytes(), None, "Maria", "Professora")
        back = RenderSession("back")
        back.render_back(None, "Maria")

        row = badge_maker.save_to_history(
            store,
            front,
            back,
            full_name="Maria",
            role="Professora",
            photo_url=None,
            template_id="t-small",
        )

        self.assertEqual(len(store.files), 2)
        self.assertTrue(row["output_url"].startswith("memory://badges/badge-front-"))
        self.assertTrue(row["back_output_url"].startswith("memory://badges/badge-back-"))
        self.assertEqual(row["template_id"], "t-small")

    def test_nothing_rendered(self):
        with self.assertRaises(BadgeRenderError):
            badge_maker.save_to_history(
                InMemoryBadgeStore(),
                RenderSession("front"),
                None,
                full_name="Maria",
                role="",
                photo_url=None,
                template_id=None,
            )


class TemplateAdminTests(BadgeMakerTestCase):
    def setUp(self):
        super().setUp()
        self.store = InMemoryBadgeStore()
        self.background = self.tmp / "Fundo Escola.PNG"
        Image.new("RGB", (200, 320), (10, 20, 30)).save(self.background, format="PNG")

    def test_create_uploads_the_background_and_saves_the_layout(self):
        geometry = dict(SMALL_FRONT, is_official=True, created_at="2020-01-01T00:00:00+00:00")

        row = badge_maker.create_template(self.store, "Escola", self.background, geometry)

        self.assertEqual(row["name"], "Escola")
        self.assertFalse(row["is_official"])
        self.assertNotEqual(row["id"], "t-small")
        self.assertNotEqual(row["created_at"], "2020-01-01T00:00:00+00:00")
        self.assertEqual(row["photo_w"], 100)
        key = row["file_url"][len("memory://"):]
        self.assertTrue(key.startswith(config.TEMPLATE_BUCKET + "/"))
        self.assertTrue(key.endswith("-fundo-escola.png"))
        self.assertEqual(self.store.files[key], self.background.read_bytes())
        self.assertEqual([r["id"] for r in self.store.list_templates()], [row["id"]])

    def test_create_back_template(self):
        row = badge_maker.create_template(
            self.store, "Verso", self.background, {"name_x": 10}, back=True
        )

        self.assertEqual(self.store.list_templates(back=True)[0]["id"], row["id"])
        self.assertEqual(self.store.list_templates(), [])

    def test_update_changes_geometry_and_background(self):
        row = badge_maker.create_template(self.store, "Escola", self.background, SMALL_FRONT)
        new_background = self.tmp / "novo.jpg"
        Image.new("RGB", (20, 20), (1, 2, 3)).save(new_background, format="JPEG")

        updated = badge_maker.update_template(
            self.store, row["id"], {"photo_x": 70, "is_official": True}, new_background
        )

        self.assertEqual(updated["photo_x"], 70)
        self.assertEqual(updated["name"], "Escola")
        self.assertFalse(updated["is_official"])
        self.assertNotEqual(updated["file_url"], row["file_url"])
        self.assertTrue(updated["file_url"].endswith("-novo.jpg"))

    def test_update_without_changes_is_rejected(self):
        row = badge_maker.create_template(self.store, "Escola", self.background, SMALL_FRONT)

        with self.assertRaises(ValueError):
            badge_maker.update_template(self.store, row["id"])


class MainTests(BadgeMakerTestCase):
    def _run(self, argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = badge_maker.main(argv)
        return code, out.getvalue()

    def _run_with_store(self, argv, store):
        with mock.patch.object(badge_maker, "_open_store", return_value=store), mock.patch.object(
            config, "BADGE_TIMEZONE", "America/Sao_Paulo"
        ):
            return self._run(argv)

    def test_templates_create_and_update_commands(self):
        store = InMemoryBadgeStore()
        background = self.tmp / "fundo.png"
        Image.new("RGB", (200, 320), (10, 20, 30)).save(background)

        code, output = self._run_with_store(
            [
                "templates", "create",
                "--name", "Escola",
                "--image", str(background),
                "--geometry", str(self.template_path),
            ],
            store,
        )

        self.assertEqual(code, 0)
        (row,) = store.list_templates()
        self.assertIn(f"Template {row['id']} created", output)
        self.assertEqual(row["width"], 200)

        geometry = self.tmp / "change.json"
        geometry.write_text(json.dumps({"name_y": 170}), encoding="utf-8")
        code, output = self._run_with_store(
            ["templates", "update", row["id"], "--geometry", str(geometry)], store
        )

        self.assertEqual(code, 0)
        self.assertIn("updated", output)
        self.assertEqual(store.list_templates()[0]["name_y"], 170)

        code, output = self._run_with_store(["templates", "update", row["id"]], store)
        self.assertEqual(code, 1)
        self.assertIn("Nothing to update", output)

    def test_templates_update_of_unknown_id_reports_store_error(self):
        geometry = self.tmp / "change.json"
        geometry.write_text(json.dumps({"name_y": 170}), encoding="utf-8")

        code, output = self._run_with_store(
            ["templates", "update", "missing", "--geometry", str(geometry), "--back"],
            InMemoryBadgeStore(),
        )

        self.assertEqual(code, 1)
        self.assertIn("not found", output)

    def test_prints_list_filters_by_name_and_day(self):
        store = InMemoryBadgeStore()
        store.insert_print_log(
            {"full_name": "Maria Silva", "action": "download", "printed_at": "2025-03-04T15:00:00+00:00"}
        )
        store.insert_print_log(
            {"full_name": "Maria Souza", "action": "print", "printed_at": "2025-03-01T15:00:00+00:00"}
        )
        store.insert_print_log(
            {"full_name": "João Lima", "action": "print", "printed_at": "2025-03-04T16:00:00+00:00"}
        )

        code, output = self._run_with_store(
            ["prints", "list", "--name", "maria", "--since", "2025-03-02", "--until", "2025-03-04"],
            store,
        )

        self.assertEqual(code, 0)
        self.assertIn("Maria Silva", output)
        self.assertIn("Download", output)
        self.assertNotIn("Maria Souza", output)
        self.assertNotIn("João Lima", output)
        self.assertIn("1 registro(s)", output)

    def test_prints_stats(self):
        store = InMemoryBadgeStore()
        store.insert_print_log({"full_name": "Maria", "action": "download"})
        store.insert_print_log(
            {"full_name": "Antigo", "action": "print", "printed_at": "2020-01-01T12:00:00+00:00"}
        )

        code, output = self._run_with_store(["prints", "stats"], store)

        self.assertEqual(code, 0)
        self.assertIn("Total: 2", output)
        self.assertIn("Hoje: 1", output)
        self.assertIn("Últimos 7 dias: 1", output)


    def test_render_writes_png_faces_and_pdf(self):
        code, _ = self._run(
            [
                "render",
                "--photo", str(self.photo),
                "--name", "Maria Silva",
                "--role", "Professora",
                "--template", str(self.template_path),
                "--output-dir", str(self.tmp / "out"),
                "--pdf",
            ]
        )

        self.assertEqual(code, 0)
        out = self.tmp / "out"
        self.assertEqual(Image.open(out / "cracha-frente-maria-silva.png").size, (200, 320))
        self.assertTrue((out / "cracha-verso-maria-silva.png").exists())
        self.assertTrue((out / "cracha-maria-silva.pdf").exists())

    def test_render_with_missing_photo_reports_the_error(self):
        code, output = self._run(
            [
                "render",
                "--photo", str(self.tmp / "nope.png"),
                "--name", "Maria",
                "--role", "Professora",
                "--no-back",
                "--output-dir", str(self.tmp / "out"),
            ]
        )

        self.assertEqual(code, 1)
        self.assertIn("Erro ao carregar a foto do crachá", output)
        self.assertFalse((self.tmp / "out").exists())

    def test_batch_command(self):
        csv_path = self.tmp / "roster.csv"
        csv_path.write_text("full_name,role,photo\nMaria Silva,Professora,maria.png\n", encoding="utf-8")

        code, output = self._run(
            [
                "batch",
                str(csv_path),
                "--template", str(self.template_path),
                "--no-back",
                "--photo-root", str(self.tmp),
                "--output-root", str(self.tmp / "badges"),
            ]
        )

        self.assertEqual(code, 0)
        self.assertIn("Generated 1 badge(s), skipped 0, failed 0", output)
        self.assertTrue((self.tmp / "badges" / "maria-silva" / "cracha-frente-maria-silva.png").exists())


if __name__ == "__main__":
    unittest.main()
