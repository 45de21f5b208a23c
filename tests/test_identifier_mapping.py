"""
Tests for swath_toolkit.identifier_mapping module
"""

import os
import tempfile
from unittest.mock import Mock

import pandas as pd
import pytest
import requests

from swath_toolkit.identifier_mapping import (
    fetch_kegg_conversion,
    load_identifier_map,
    map_identifiers,
    split_peak_names,
    translate_accessions,
)
from swath_toolkit.validation import EmptyResultSet, IdentifierMappingFailure


def mock_session(responses):
    """Session whose get() answers from a {url suffix: text} dict"""
    session = Mock()

    def get(url, timeout=None):
        for suffix, text in responses.items():
            if url.endswith(suffix):
                return Mock(ok=True, status_code=200, text=text)
        return Mock(ok=False, status_code=404, text="")

    session.get.side_effect = get
    return session


class TestSplitPeakNames:
    """Test the three-field peak name schema"""

    def test_split(self):
        parts = split_peak_names(["sp|F1SGG3|F1SGG3_PIG", "tr|A0A287A1B2|A0A287A1B2_PIG"])

        assert list(parts.columns) == ["Peak Name", "Namespace", "Accession", "Entry_Name"]
        assert parts["Accession"].tolist() == ["F1SGG3", "A0A287A1B2"]
        assert parts.loc[0, "Namespace"] == "sp"

    def test_wrong_field_count_raises(self):
        with pytest.raises(ValueError, match="F1SGG3"):
            split_peak_names(["sp|F1SGG3|F1SGG3_PIG", "F1SGG3"])

    def test_custom_delimiter(self):
        parts = split_peak_names(["sp;P1;P1_PIG"], delimiter=";")
        assert parts.loc[0, "Accession"] == "P1"


class TestFetchKeggConversion:
    """Test KEGG REST conv parsing"""

    def test_prefixes_stripped(self):
        session = mock_session({"conv/ssc/uniprot": "up:P1\tssc:100\nup:P2\tssc:200\n"})

        table = fetch_kegg_conversion("ssc", "uniprot", session=session)

        assert table.to_dict("list") == {"source": ["P1", "P2"], "target": ["ssc:100", "ssc:200"]}
        session.get.assert_called_once_with("https://rest.kegg.jp/conv/ssc/uniprot", timeout=30)

    def test_entrez_prefix_stripped(self):
        session = mock_session({"conv/ncbi-geneid/ssc": "ssc:100\tncbi-geneid:100\n"})

        table = fetch_kegg_conversion("ncbi-geneid", "ssc", session=session)

        assert table.loc[0, "target"] == "100"
        assert table.loc[0, "source"] == "ssc:100"

    def test_http_error_raises_connection_error(self):
        session = mock_session({})
        with pytest.raises(ConnectionError, match="conv/ssc/uniprot"):
            fetch_kegg_conversion("ssc", "uniprot", session=session)

    def test_network_failure_raises_connection_error(self):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError("unreachable")
        with pytest.raises(ConnectionError, match="rest.kegg.jp"):
            fetch_kegg_conversion("ssc", "uniprot", session=session)


class TestMapIdentifiers:
    """Test the ambiguity and unmapped policies"""

    def _mapping(self):
        return pd.DataFrame({
            "source": ["P1", "P2", "P2", "P3"],
            "target": ["ssc:1", "ssc:2", "ssc:22", "ssc:3"],
        })

    def test_first_policy(self):
        mapped = map_identifiers(["P1", "P2"], self._mapping(), ambiguous="first")
        assert mapped.to_dict("list") == {"source": ["P1", "P2"], "target": ["ssc:1", "ssc:2"]}

    def test_expand_policy(self):
        mapped = map_identifiers(["P2"], self._mapping(), ambiguous="expand")
        assert mapped["target"].tolist() == ["ssc:2", "ssc:22"]

    def test_error_policy(self):
        with pytest.raises(IdentifierMappingFailure) as exc_info:
            map_identifiers(["P1", "P2"], self._mapping(), ambiguous="error")
        assert exc_info.value.unmapped == ["P2"]

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="ambiguous"):
            map_identifiers(["P1"], self._mapping(), ambiguous="last")

    def test_strict_unmapped_raises(self):
        with pytest.raises(IdentifierMappingFailure) as exc_info:
            map_identifiers(["P1", "P9"], self._mapping(), strict=True)
        assert exc_info.value.unmapped == ["P9"]

    def test_lenient_unmapped_dropped(self):
        mapped = map_identifiers(["P1", "P9"], self._mapping(), strict=False)
        assert mapped["source"].tolist() == ["P1"]

    def test_nothing_mapped_raises(self):
        with pytest.raises(EmptyResultSet):
            map_identifiers(["P8", "P9"], self._mapping(), strict=False)


class TestTranslateAccessions:
    """Test UniProt -> KEGG/Entrez chains"""

    def test_kegg_via_rest(self):
        session = mock_session({"conv/ssc/uniprot": "up:P1\tssc:100\nup:P2\tssc:200\n"})

        mapped = translate_accessions(["P1", "P2"], "kegg", session=session)

        assert mapped["target"].tolist() == ["ssc:100", "ssc:200"]

    def test_entrez_via_rest(self):
        session = mock_session({
            "conv/ssc/uniprot": "up:P1\tssc:100\nup:P2\tssc:200\n",
            "conv/ncbi-geneid/ssc": "ssc:100\tncbi-geneid:100\nssc:200\tncbi-geneid:200\n",
        })

        mapped = translate_accessions(["P1", "P2"], "entrez", session=session)

        assert mapped.to_dict("list") == {"source": ["P1", "P2"], "target": ["100", "200"]}

    def test_offline_mapping_skips_network(self, identifier_map):
        mapped = translate_accessions(["ACC000", "ACC001"], "kegg", mapping=identifier_map)
        assert mapped["target"].tolist() == ["ssc:100000", "ssc:100001"]

    def test_unknown_namespace(self):
        with pytest.raises(ValueError, match="target_namespace"):
            translate_accessions(["P1"], "ensembl", session=mock_session({}))


class TestLoadIdentifierMap:
    """Test reading offline mapping tables"""

    def test_load_csv(self, identifier_map):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "map.csv")
            identifier_map.to_csv(path, index=False)
            loaded = load_identifier_map(path)

        pd.testing.assert_frame_equal(loaded, identifier_map)

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_identifier_map("no_such_map.csv")
