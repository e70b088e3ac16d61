from cloudstub.config import runtime_config


def test_auto_id_prefix_default(monkeypatch):
    monkeypatch.delenv("FIRESTORE_STUB_ID_PREFIX", raising=False)
    assert runtime_config.get_auto_id_prefix() == "stub_"


def test_auto_id_prefix_allows_empty_override(monkeypatch):
    monkeypatch.setenv("FIRESTORE_STUB_ID_PREFIX", "")
    assert runtime_config.get_auto_id_prefix() == ""


def test_trigger_region_precedence(monkeypatch):
    for name in ("FIRESTORE_STUB_TRIGGER_REGION", "GCP_REGION", "REGION"):
        monkeypatch.delenv(name, raising=False)
    assert runtime_config.get_trigger_region() == "us-central1"
    monkeypatch.setenv("REGION", "asia-east1")
    assert runtime_config.get_trigger_region() == "asia-east1"
    monkeypatch.setenv("GCP_REGION", "europe-west2")
    assert runtime_config.get_trigger_region() == "europe-west2"
    monkeypatch.setenv("FIRESTORE_STUB_TRIGGER_REGION", "us-east4")
    assert runtime_config.get_trigger_region() == "us-east4"
