"""Tests for CPA network postback field extraction."""

from uuid import uuid4

import pytest

from modloot.core.errors import UnsupportedNetwork
from modloot.core.postback import CPANetwork


class TestParseNetwork:
    @pytest.mark.parametrize("name", ["ogads", "OGADS", "CpaGrip", "cpalead", "Goose", " goose "])
    def test_known_networks_case_insensitive(self, name):
        assert CPANetwork.parse(name).value == name.strip().lower()

    def test_unknown_network_rejected(self):
        with pytest.raises(UnsupportedNetwork) as exc:
            CPANetwork.parse("adscend")
        assert exc.value.status_code == 400
        assert exc.value.message == "Unsupported network: adscend"


class TestExtract:
    def test_ogads(self):
        cid = str(uuid4())
        fields = CPANetwork.OGADS.extract({
            "userid": "a@b.com", "id": "991", "payout": "0.45", "ip": "1.2.3.4",
            "offername": "Survey", "aff_sub": cid,
        })
        assert fields.email == "a@b.com"
        assert fields.offer_id == "991"
        assert fields.payout == "0.45"
        assert fields.offer_name == "Survey"
        assert fields.completion_id == cid

    def test_cpagrip_uses_tracking_id(self):
        fields = CPANetwork.CPAGRIP.extract({"userid": "a@b.com", "payout": "1", "tracking_id": "abc"})
        assert fields.completion_id == "abc"

    def test_cpalead_fallback_chain(self):
        fields = CPANetwork.CPALEAD.extract({
            "user_id": "c@d.com", "offer_id": "7", "amount": "2.10", "offer_name": "App", "subid": "xyz",
        })
        assert fields.email == "c@d.com"
        assert fields.offer_id == "7"
        assert fields.payout == "2.10"
        assert fields.offer_name == "App"
        assert fields.completion_id == "xyz"

    def test_cpalead_prefers_subid2(self):
        fields = CPANetwork.CPALEAD.extract({"subid2": "first@x.com", "userid": "second@x.com"})
        assert fields.email == "first@x.com"

    def test_goose_id_is_completion(self):
        cid = str(uuid4())
        fields = CPANetwork.GOOSE.extract({"email": "e@f.com", "id": cid, "offerid": "5", "payout": "3"})
        assert fields.email == "e@f.com"
        assert fields.offer_id == "5"
        assert fields.completion_uuid is not None
        assert str(fields.completion_uuid) == cid

    def test_explicit_completion_id_wins(self):
        cid = str(uuid4())
        fields = CPANetwork.GOOSE.extract({"email": "e@f.com", "id": "other", "completion_id": cid})
        assert fields.completion_id == cid

    def test_invalid_completion_id_is_none(self):
        fields = CPANetwork.GOOSE.extract({"email": "e@f.com", "id": "not-a-uuid"})
        assert fields.completion_id == "not-a-uuid"
        assert fields.completion_uuid is None

    def test_missing_fields_are_none(self):
        fields = CPANetwork.OGADS.extract({})
        assert fields.email is None
        assert fields.payout is None
        assert fields.completion_uuid is None
