"""Unit tests for fio output parsing."""

import json

import pytest

from common.errors import ParseAnomaly
from diskbench.core.parser import ResultParser, decode, parse_record


def fio_output(*documents: dict, noise: bool = True) -> bytes:
    """Render documents the way fio prints them with --status-interval."""
    parts = []
    if noise:
        parts.append("fio: this platform does not support process shared mutexes\n")
    for doc in documents:
        parts.append(json.dumps(doc, indent=4) + "\n")
    return "".join(parts).encode()


def with_elapsed(document: dict, elapsed: int) -> dict:
    doc = json.loads(json.dumps(document))
    doc["jobs"][0]["elapsed"] = elapsed
    return doc


class TestDecode:
    """Tests for the pure buffered decoder."""

    def test_single_document(self, sample_fio_document):
        """Test one complete document."""
        records, rest = decode(b"", fio_output(sample_fio_document))

        assert len(records) == 1
        assert json.loads(records[0]) == sample_fio_document
        assert rest == b""

    def test_partial_document_is_buffered(self, sample_fio_document):
        """Test an incomplete document stays in the buffer."""
        data = fio_output(sample_fio_document, noise=False)

        records, rest = decode(b"", data[:50])

        assert records == []
        assert rest == data[:50]

    def test_concatenated_objects_on_one_line(self):
        """Test JSON objects without newlines in between."""
        records, rest = decode(b"", b'{"a": 1}{"b": "}"}\n')

        assert [json.loads(r) for r in records] == [{"a": 1}, {"b": "}"}]
        assert rest == b""

    def test_braces_inside_strings(self):
        """Test braces and escaped quotes inside strings."""
        records, _ = decode(b"", b'{"name": "x\\"{{", "v": 2}\n')

        assert json.loads(records[0]) == {"name": 'x"{{', "v": 2}

    def test_noise_with_brace_mid_line_is_ignored(self):
        """Test a warning containing a brace does not start a record."""
        records, rest = decode(b"", b'fio: bad option {foo\n{"ok": true}\n')

        assert [json.loads(r) for r in records] == [{"ok": True}]
        assert rest == b""

    def test_unfinished_noise_line_is_kept(self):
        """Test a noise line split across reads."""
        records, rest = decode(b"", b"fio: warning {")
        assert records == []

        records, rest = decode(rest, b'"x"}\n{"ok": 1}\n')

        assert [json.loads(r) for r in records] == [{"ok": 1}]

    def test_split_at_every_offset(self, sample_fio_document):
        """Test splitting the stream anywhere yields the same records."""
        data = fio_output(with_elapsed(sample_fio_document, 1), with_elapsed(sample_fio_document, 2))
        whole, _ = decode(b"", data)

        for offset in range(len(data) + 1):
            first, rest = decode(b"", data[:offset])
            second, rest = decode(rest, data[offset:])

            assert first + second == whole
            assert rest == b""


class TestParseRecord:
    """Tests for converting fio documents into samples."""

    def test_fio3_document(self, sample_fio_document):
        """Test a fio 3.x report."""
        sample = parse_record(sample_fio_document)

        assert sample.elapsed == 6
        assert sample.read.io_bytes == 204800000
        assert sample.read.bw_bytes == 40960000
        assert sample.iops == 10000.0
        assert sample.read.lat_mean == pytest.approx(95e-6)
        assert sample.lat_percentiles[99.0] == pytest.approx(300e-6)
        assert sample.lat_percentiles[99.9] == pytest.approx(600e-6)
        assert sample.write.is_empty

    def test_percentiles_absent_mean_only(self, sample_fio_document):
        """Test latency falls back to mean only."""
        del sample_fio_document["jobs"][0]["read"]["clat_ns"]["percentile"]

        sample = parse_record(sample_fio_document)

        assert sample.lat_percentiles == {}
        assert sample.lat_mean == pytest.approx(95e-6)

    def test_legacy_fields(self):
        """Test old fio reports in KiB and microseconds."""
        doc = {"jobs": [{
            "job_runtime": 3000,
            "read": {"io_kbytes": 100, "bw": 50, "iops": 12.5, "lat": {"mean": 80.0}},
        }]}

        sample = parse_record(doc)

        assert sample.elapsed == 3
        assert sample.read.io_bytes == 100 * 1024
        assert sample.read.bw_bytes == 50 * 1024
        assert sample.read.lat_mean == pytest.approx(80e-6)

    def test_multiple_jobs_are_summed(self, sample_fio_document):
        """Test reports without group_reporting."""
        job = sample_fio_document["jobs"][0]
        sample_fio_document["jobs"].append(json.loads(json.dumps(job)))

        sample = parse_record(sample_fio_document)

        assert sample.iops == 20000.0
        assert sample.bw_bytes == 2 * 40960000
        assert sample.read.lat_mean == pytest.approx(95e-6)

    def test_mixed_workload(self, sample_fio_document):
        """Test read/write split."""
        job = sample_fio_document["jobs"][0]
        job["write"] = {"io_bytes": 10, "bw_bytes": 20, "iops": 10000.0, "lat_ns": {"mean": 105000.0}}

        sample = parse_record(sample_fio_document)

        assert sample.iops == 20000.0
        assert sample.lat_mean == pytest.approx(100e-6)

    @pytest.mark.parametrize("document", [
        [],
        {"fio version": "fio-3.36"},
        {"jobs": []},
        {"jobs": ["nope"]},
        {"jobs": [{"jobname": "x"}]},
    ])
    def test_unrecognized_documents(self, document):
        """Test documents that are not fio reports."""
        assert parse_record(document) is None

    def test_non_numeric_values_ignored(self):
        """Test garbage values become zero."""
        sample = parse_record({"jobs": [{"read": {"iops": "lots", "bw_bytes": None}}]})

        assert sample.iops == 0
        assert sample.bw_bytes == 0


class TestResultParser:
    """Tests for the stateful parser."""

    def test_feed_whole_and_split_equal(self, sample_fio_document):
        """Test chunking does not change the samples."""
        data = fio_output(*(with_elapsed(sample_fio_document, i) for i in range(1, 4)))

        whole = ResultParser().feed(data)

        parser = ResultParser()
        split = []
        for i in range(0, len(data), 7):
            split.extend(parser.feed(data[i:i + 7]))

        assert [s.elapsed for s in whole] == [1, 2, 3]
        assert split == whole

    def test_finish_returns_final_report(self, sample_fio_document):
        """Test finish() returns the last sample and resets."""
        parser = ResultParser()
        parser.feed(fio_output(with_elapsed(sample_fio_document, 1), with_elapsed(sample_fio_document, 6)))

        final = parser.finish()

        assert final.elapsed == 6
        assert parser.last_sample is None
        assert parser.finish() is None

    def test_finish_drops_truncated_record(self, sample_fio_document):
        """Test a record cut off at end of stream is discarded."""
        parser = ResultParser()
        data = fio_output(sample_fio_document, noise=False)

        assert parser.feed(data[:-20]) == []
        assert parser.finish() is None
        assert parser.anomalies == 1

    def test_malformed_records_skipped(self, sample_fio_document):
        """Test bad JSON and foreign documents are skipped."""
        parser = ResultParser()
        data = b'{"jobs": [1, 2,]}\n{"hello": "world"}\n' + fio_output(sample_fio_document)

        samples = parser.feed(data)

        assert len(samples) == 1
        assert parser.anomalies == 2

    def test_strict_mode_raises(self):
        """Test strict parsing."""
        parser = ResultParser(strict=True)

        with pytest.raises(ParseAnomaly):
            parser.feed(b'{"not": "fio"}\n')
