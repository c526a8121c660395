import io
import os
import shutil
import tempfile
import unittest
from datetime import datetime, timezone

from openpyxl import load_workbook

from ido_extractor.domain.contracts import ColumnPatch
from ido_extractor.errors import ValidationError
from ido_extractor.export import (
    apply_column_patches,
    export_data,
    export_filename,
    to_csv,
    to_xlsx,
)


ROWS = [
    {"Lot": "L-01", "Item": "A100", "Qty": 5},
    {"Lot": "L-02", "Item": "B200", "Note": 'says "hi", twice'},
]


class ColumnPatchTest(unittest.TestCase):
    def test_add_and_modify_leave_input_untouched(self) -> None:
        patched = apply_column_patches(
            ROWS,
            [ColumnPatch(name="Site", value="MAIN"), ColumnPatch(name="Item", value="X", mode="modify")],
        )
        self.assertEqual([row["Site"] for row in patched], ["MAIN", "MAIN"])
        self.assertEqual([row["Item"] for row in patched], ["X", "X"])
        self.assertNotIn("Site", ROWS[0])
        self.assertEqual(ROWS[0]["Item"], "A100")

    def test_blank_names_are_ignored(self) -> None:
        patched = apply_column_patches(ROWS, [ColumnPatch(name="  ", value="x")])
        self.assertEqual(patched, ROWS)

    def test_modify_unknown_column_fails(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            apply_column_patches(ROWS, [ColumnPatch(name="Missing", value="x", mode="modify")])
        self.assertEqual(ctx.exception.code, "unknown_column")


class CsvTest(unittest.TestCase):
    def test_headers_follow_first_seen_order_and_values_are_escaped(self) -> None:
        text = to_csv(ROWS)
        self.assertEqual(
            text.split("\n"),
            [
                "Lot,Item,Qty,Note",
                "L-01,A100,5,",
                'L-02,B200,,"says ""hi"", twice"',
            ],
        )

    def test_empty_items_render_empty_text(self) -> None:
        self.assertEqual(to_csv([]), "")

    def test_integral_floats_render_without_fraction(self) -> None:
        text = to_csv([{"Qty": 1.0, "Rate": 2.5, "Count": 3}])
        self.assertEqual(text.split("\n")[1], "1,2.5,3")

    def test_nested_values_are_json_encoded(self) -> None:
        text = to_csv([{"tags": ["a", "b"], "ok": True}])
        self.assertEqual(text.split("\n")[1], '"[""a"", ""b""]",true')


class XlsxTest(unittest.TestCase):
    def test_single_data_sheet_with_header_row(self) -> None:
        workbook = load_workbook(io.BytesIO(to_xlsx(ROWS)))
        self.assertEqual(workbook.sheetnames, ["Data"])
        rows = list(workbook["Data"].iter_rows(values_only=True))
        self.assertEqual(rows[0], ("Lot", "Item", "Qty", "Note"))
        self.assertEqual(rows[1], ("L-01", "A100", 5, None))
        self.assertEqual(len(rows), 3)


class ExportDataTest(unittest.TestCase):
    def setUp(self) -> None:
        self.output_dir = tempfile.mkdtemp(prefix="ido_export_test_")

    def tearDown(self) -> None:
        shutil.rmtree(self.output_dir, ignore_errors=True)

    def test_filename_uses_iso_timestamp_with_dashes(self) -> None:
        moment = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
        self.assertEqual(export_filename("Staging_Area_Label", "csv", moment), "Staging_Area_Label_2024-05-06T07-08-09.csv")

    def test_writes_csv_file_into_new_directory(self) -> None:
        target = os.path.join(self.output_dir, "nested")
        result = export_data(ROWS, "Job", "CSV", target, now=datetime(2024, 1, 1, tzinfo=timezone.utc))

        self.assertEqual(result.record_count, 2)
        self.assertEqual(result.mime_type, "text/csv")
        self.assertTrue(result.file_path.startswith(target))
        with open(result.file_path, encoding="utf-8") as handle:
            self.assertEqual(handle.read(), to_csv(ROWS))
        self.assertEqual(result.size_bytes, os.path.getsize(result.file_path))

    def test_writes_xlsx_file(self) -> None:
        result = export_data(ROWS, "Job", "xlsx", self.output_dir)
        self.assertTrue(result.file_name.endswith(".xlsx"))
        self.assertEqual(load_workbook(result.file_path).sheetnames, ["Data"])

    def test_rejects_empty_items_and_unknown_formats(self) -> None:
        with self.assertRaises(ValidationError) as empty_ctx:
            export_data([], "Job", "csv", self.output_dir)
        self.assertEqual(empty_ctx.exception.code, "no_data_to_export")

        with self.assertRaises(ValidationError) as format_ctx:
            export_data(ROWS, "Job", "json", self.output_dir)
        self.assertEqual(format_ctx.exception.code, "unsupported_format")


if __name__ == "__main__":
    unittest.main()
