from pathlib import Path

from crm.core.feature_flags import FeatureFlag, FlagState, StaticFlagProvider, YamlFlagProvider

SHIPPED_FLAGS = Path(__file__).resolve().parents[1] / "config" / "feature_flags.yaml"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def write_flags(path: Path, body: str) -> str:
    path.write_text(body, encoding="utf-8")
    return str(path)


def test_shipped_flags_are_all_on():
    provider = YamlFlagProvider(str(SHIPPED_FLAGS))
    assert provider.snapshot() == {flag.value: True for flag in FeatureFlag}
    assert provider.loaded


def test_enabled_and_disabled_are_explicit(tmp_path):
    path = write_flags(tmp_path / "flags.yaml", """
flags:
  loyalty:
    enabled: true
  credit_writes:
    enabled: true
    disabled: true
  credit_setup_intent:
    enabled: false
""")
    provider = YamlFlagProvider(path)

    assert provider.is_enabled("loyalty")
    assert not provider.is_enabled("credit_writes")
    assert not provider.is_enabled("credit_setup_intent")
    assert not provider.is_enabled("orders_on_credit")


def test_missing_file_fails_closed(tmp_path):
    provider = YamlFlagProvider(str(tmp_path / "absent.yaml"))
    assert not provider.is_enabled("loyalty")
    assert not provider.loaded


def test_unreadable_file_fails_closed(tmp_path):
    path = write_flags(tmp_path / "flags.yaml", "flags: [this is: not valid")
    provider = YamlFlagProvider(path)
    assert not provider.is_enabled("loyalty")

    path = write_flags(tmp_path / "flags.yaml", "flags:\n  loyalty:\n    enabled: sometimes\n")
    assert not YamlFlagProvider(path).is_enabled("loyalty")


def test_reload_after_interval(tmp_path):
    clock = FakeClock()
    path = write_flags(tmp_path / "flags.yaml", "flags:\n  loyalty:\n    enabled: true\n")
    provider = YamlFlagProvider(path, refresh_seconds=30, clock=clock)
    assert provider.is_enabled("loyalty")

    write_flags(tmp_path / "flags.yaml", "flags:\n  loyalty:\n    enabled: true\n    disabled: true\n")
    clock.now = 10
    assert provider.is_enabled("loyalty")

    clock.now = 31
    assert not provider.is_enabled("loyalty")


def test_static_provider():
    provider = StaticFlagProvider.all_enabled()
    assert provider.is_enabled("credit_writes")

    provider.set("credit_writes", FlagState(enabled=True, disabled=True))
    assert not provider.is_enabled("credit_writes")
    assert not StaticFlagProvider().is_enabled("loyalty")
