import json

from cashu_gateway.wallet.change_vault import RECOVERY, ChangeVault


def test_tokens_persisted_and_deduplicated(tmp_path):
    path = tmp_path / "vault" / "change.json"
    vault = ChangeVault(path)
    assert vault.add(1, "cashuBaaa") is True
    assert vault.add(1, "cashuBaaa") is False
    vault.add(1, "cashuBbbb")
    vault.add(2, "cashuBccc")

    # relu depuis le disque par une nouvelle instance
    again = ChangeVault(path)
    assert again.tokens(1) == ["cashuBaaa", "cashuBbbb"]
    assert again.tokens(2) == ["cashuBccc"]
    assert json.loads(path.read_text(encoding="utf-8"))["1"][0]["token"] == "cashuBaaa"


def test_recovery_tokens_kept_apart(tmp_path):
    vault = ChangeVault(tmp_path / "v.json")
    vault.add(1, "cashuBchange")
    vault.add(1, "cashuBminted", kind=RECOVERY)
    assert vault.tokens(1) == ["cashuBchange"]
    assert vault.tokens(1, RECOVERY) == ["cashuBminted"]
    vault.remove(1, "cashuBminted")
    assert vault.tokens(1, RECOVERY) == []
    assert list(tmp_path.iterdir()) == [tmp_path / "v.json"]


def test_missing_file_is_empty(tmp_path):
    assert ChangeVault(tmp_path / "absent.json").tokens(1) == []
