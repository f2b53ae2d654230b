import pytest

from asset_store import AssetStore
from poster.errors import StorageError
from poster.raster import EncodedImage


@pytest.fixture
def store(tmp_path):
    return AssetStore(str(tmp_path / "campaigns"), "http://cdn.test/")


@pytest.fixture
def assets():
    return {
        "master": EncodedImage(data=b"\xff\xd8master", format="JPEG"),
        "transparent": EncodedImage(data=b"\x89PNGcutout", format="PNG"),
    }


def test_save_campaign_layout(store, assets):
    urls = store.save_campaign("campaign_abc", assets)

    assert urls == {
        "master": "http://cdn.test/campaigns/campaign_abc/campaign_abc_master.jpg",
        "transparent": "http://cdn.test/campaigns/campaign_abc/campaign_abc_transparent.png",
    }
    assert (store.root / "campaign_abc" / "campaign_abc_master.jpg").read_bytes() == b"\xff\xd8master"


def test_resolve_finds_saved_file(store, assets):
    store.save_campaign("campaign_abc", assets)

    path = store.resolve("campaign_abc", "campaign_abc_transparent.png")
    assert path is not None and path.read_bytes() == b"\x89PNGcutout"
    assert store.resolve("campaign_abc", "campaign_abc_square_1x1.jpg") is None


@pytest.mark.parametrize("campaign_id, filename", [
    ("..", "campaign_abc_master.jpg"),
    ("campaign_abc", "../secrets.jpg"),
    ("campaign_abc", "master.exe"),
])
def test_resolve_rejects_traversal(store, campaign_id, filename):
    with pytest.raises(StorageError) as exc_info:
        store.resolve(campaign_id, filename)
    assert exc_info.value.status_code == 400


def test_save_single_uses_namespace(store, assets):
    url, filename = store.save_single("removebg", assets["transparent"], "transparent")

    assert filename.startswith("removebg_")
    assert filename.endswith("_transparent.png")
    assert url.endswith(filename)


def test_cleanup(store, assets):
    store.save_campaign("campaign_abc", assets)

    assert store.cleanup("campaign_abc")
    assert not (store.root / "campaign_abc").exists()
    assert store.cleanup("campaign_abc")
    assert not store.cleanup("../etc")


def test_failed_write_removes_partial_campaign(store, assets, monkeypatch):
    from pathlib import Path

    original = Path.write_bytes

    def write_bytes(self, data):
        if self.suffix == ".png":
            raise OSError("disk full")
        return original(self, data)

    monkeypatch.setattr(Path, "write_bytes", write_bytes)

    with pytest.raises(StorageError) as exc_info:
        store.save_campaign("campaign_abc", assets)
    assert exc_info.value.to_payload()["stage"] == "store"
    assert not (store.root / "campaign_abc").exists()
