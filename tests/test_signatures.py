from artifactscope.core.signatures import SignatureRegistry, default_signatures


def test_default_table_order_and_state() -> None:
    registry = SignatureRegistry()
    names = [s.name for s in registry.all()]
    assert names[:3] == ["JPEG", "PNG", "PDF"]
    enabled = {s.name for s in registry.enabled()}
    assert "TIFF (LE)" not in enabled
    assert "SQLite" not in enabled
    assert len(registry) == len(default_signatures())


def test_set_enabled_by_name() -> None:
    registry = SignatureRegistry()
    assert registry.set_enabled("SQLite", True)
    assert registry.get("SQLite").enabled
    assert not registry.set_enabled("NoSuchFormat", True)


def test_returned_signatures_are_copies() -> None:
    registry = SignatureRegistry()
    jpeg = registry.get("JPEG")
    jpeg.enabled = False
    registry.all()[0].max_size = 1
    assert registry.get("JPEG").enabled
    assert registry.get("JPEG").max_size == 50 * 1024 * 1024


def test_copies_do_not_share_state() -> None:
    original = SignatureRegistry()
    copy = original.copy()
    copy.set_enabled("PNG", False)
    assert original.get("PNG").enabled
    assert not copy.get("PNG").enabled


def test_enabling_sqlite_adds_it_to_the_carve_set() -> None:
    registry = SignatureRegistry()
    assert "SQLite" not in [s.name for s in registry.enabled()]
    registry.set_enabled("SQLite", True)
    assert registry.enabled()[-1].name == "SQLite"
