import pytest
from pydantic import ValidationError

from registry import conf
from registry.conf import ConsensusConf
from registry.utils import env
from registry.utils.env import EnvVarSpec


class TestEnv:
    def test_default_and_parse(self, monkeypatch):
        spec = EnvVarSpec(id="TEST_COUNT", default="5", parse=int, type=(int, ...))
        monkeypatch.delenv("TEST_COUNT", raising=False)
        assert env.parse(spec) == 5
        monkeypatch.setenv("TEST_COUNT", "9")
        assert env.parse(spec) == 9

    def test_missing_required(self, monkeypatch):
        monkeypatch.delenv("TEST_REQUIRED", raising=False)
        with pytest.raises(ValueError):
            env.parse(EnvVarSpec(id="TEST_REQUIRED"))
        assert env.parse(EnvVarSpec(id="TEST_REQUIRED", is_optional=True)) is None

    def test_validate_reports_bad_values(self, monkeypatch):
        monkeypatch.setenv("DEADLINE_EXPIRY_POLICY", "approve")
        assert env.validate([conf.DEADLINE_EXPIRY_POLICY]) is False
        monkeypatch.setenv("DEADLINE_EXPIRY_POLICY", "keep_pending")
        assert env.validate([conf.DEADLINE_EXPIRY_POLICY]) is True


class TestConsensusConf:
    def test_defaults(self, monkeypatch):
        for name in ("VALIDATOR_COUNT", "REQUIRED_APPROVALS", "VOTING_DEADLINE_DAYS", "DEADLINE_EXPIRY_POLICY"):
            monkeypatch.delenv(name, raising=False)
        c = conf.get_consensus_conf()
        assert (c.validator_count, c.required_approvals, c.voting_deadline_days) == (5, 3, 4)
        assert c.expiry_policy == "reject"

    @pytest.mark.parametrize("kwargs", [
        {"validator_count": 0},
        {"required_approvals": 6},
        {"minimum_validators": 2},
        {"voting_deadline_days": 0},
    ])
    def test_rejects_inconsistent_quorum(self, kwargs):
        with pytest.raises(ValidationError):
            ConsensusConf(**kwargs)

    def test_settlement_from_env(self, monkeypatch):
        monkeypatch.setenv("SETTLEMENT_ENABLED", "true")
        monkeypatch.setenv("TIGERBEETLE_ADDRESS", "tb:3001")
        s = conf.get_settlement_conf()
        assert s.enabled is True
        assert s.address == "tb:3001"
