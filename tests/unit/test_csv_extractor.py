"""
Unit tests for the CSV reader
"""

import pytest

from core.exceptions import CSVParseError, SourceNotFoundError
from ingestion.extractors.csv_extractor import CSVExtractor, first_number, list_chunk_files


class TestChunkOrdering:
    """Numeric ordering of chunk files"""

    def test_first_number(self):
        assert first_number("chunk_10.csv") == 10
        assert first_number("part7_of_9.csv") == 7
        assert first_number("nodigits.csv") == 0

    def test_chunk_files_sorted_numerically(self, tmp_path):
        for name in ["chunk_2.csv", "chunk_10.csv", "chunk_1.csv", "readme.md"]:
            (tmp_path / name).write_text("a\n1\n")

        files = list_chunk_files(tmp_path)

        assert [f.name for f in files] == ["chunk_1.csv", "chunk_2.csv", "chunk_10.csv"]

    def test_extension_match_is_case_insensitive(self, tmp_path):
        (tmp_path / "chunk_1.CSV").write_text("a\n1\n")
        assert [f.name for f in list_chunk_files(tmp_path)] == ["chunk_1.CSV"]


class TestCSVExtractor:
    """Reading files and directories"""

    def test_headers_normalized_and_values_strings(self, write_csv):
        path = write_csv("in.csv", " Reference_ID ,Count,Empty\nabc,0042,\n")

        records = CSVExtractor(path).read_file(path)

        assert records == [{"reference_id": "abc", "count": "0042", "empty": ""}]

    def test_keeps_header_case_when_asked(self, write_csv):
        path = write_csv("in.csv", "Environment,Name\nprod,a\n")

        df = CSVExtractor(path).read_frame(path, normalize_headers=False)

        assert list(df.columns) == ["Environment", "Name"]

    def test_custom_delimiter(self, write_csv):
        path = write_csv("in.csv", "a;b\n1;2\n")
        assert CSVExtractor(path, delimiter=";").read_file(path) == [{"a": "1", "b": "2"}]

    def test_empty_file_yields_nothing(self, write_csv):
        path = write_csv("empty.csv", "")
        assert CSVExtractor(path).read_file(path) == []

    def test_missing_path_raises(self, tmp_path):
        with pytest.raises(SourceNotFoundError):
            CSVExtractor(tmp_path / "missing.csv").files()

    def test_malformed_row_raises_parse_error(self, write_csv):
        path = write_csv("bad.csv", "id,name\n1,a\n2,b,c\n")

        with pytest.raises(CSVParseError) as exc_info:
            CSVExtractor(path).read_file(path)

        assert exc_info.value.context["file_path"] == str(path)

    def test_extra_fields_in_first_row_raise_parse_error(self, write_csv):
        path = write_csv(
            "bad.csv",
            "pipeline_name,pipeline_source,reference_id,started_at,finished_at,status\n"
            "build,github,ref-1,1,2,success,x,y\n"
            "build,github,ref-2,1,2,success\n",
        )

        with pytest.raises(CSVParseError):
            CSVExtractor(path).read_file(path)

    def test_unterminated_quote_raises_parse_error(self, write_csv):
        path = write_csv("bad.csv", 'id,name\n1,"unterminated\n')

        with pytest.raises(CSVParseError):
            CSVExtractor(path).read_file(path)

    def test_units_follow_chunk_order_with_positions(self, pipeline_chunks):
        units = list(CSVExtractor(pipeline_chunks).iter_units())

        assert [u.record["reference_id"] for u in units] == ["ref-1a", "ref-2a", "ref-2b", "ref-10a"]
        assert units[2].position == {"file": "chunk_2.csv", "row": 1}
        assert units[2].source == "chunk_2.csv"
