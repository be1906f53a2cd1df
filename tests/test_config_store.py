"""
Tests for ConfigStore.

============================================================
TEST SCENARIOS
============================================================
1. Key missing from config but present in example -> exit 1
2. Nested key missing -> exit 1
3. required rule on empty value -> exit 1
4. sameAsExample rule on differing value -> exit 1
5. Valid documents merge into the tree
6. Environment variants and groups
7. sameAsExample keeps booleans apart from numbers

============================================================
"""

import logging
import pytest

from conftest import write_json
from core.config_store import (
    ConfigRule,
    ConfigStore,
    collect_key_paths,
    deep_equal,
    deep_merge,
    resolve_path,
)
from core.exceptions import ConfigurationError, ConfigValidationError


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def conf_dir(tmp_path):
    """Configuration directory under the worker root."""
    return tmp_path / "config"


@pytest.fixture
def store(tmp_path):
    """Store with the fatal policy enabled."""
    return ConfigStore(root=tmp_path)


@pytest.fixture
def lenient_store(tmp_path):
    """Store that raises instead of exiting."""
    return ConfigStore(root=tmp_path, exit_on_error=False)


# ============================================================
# TEST: FATAL VALIDATION
# ============================================================

class TestFatalValidation:
    """Validation failures terminate with status 1."""

    def test_missing_keys_exit(self, store, conf_dir):
        """Example keys absent from the config are fatal."""
        write_json(conf_dir / "missing-keys.json", {"coin": {"a": 1}})
        write_json(conf_dir / "missing-keys.json.example", {"coin": {"a": 1, "b": {"c": 2}}})

        with pytest.raises(SystemExit) as exc_info:
            store.load("missing-keys", group="coin")

        assert exc_info.value.code == 1
        assert store.get("coin") is None

    def test_missing_nested_keys_exit(self, store, conf_dir):
        """Nested example keys are checked too."""
        write_json(conf_dir / "nested.json", {"a": 1, "b": {}})
        write_json(conf_dir / "nested.json.example", {"a": 1, "b": {"c": 2}})

        with pytest.raises(SystemExit) as exc_info:
            store.load("nested")

        assert exc_info.value.code == 1

    def test_required_empty_exit(self, store, conf_dir):
        """A required key holding an empty string is fatal."""
        write_json(conf_dir / "required.json", {"token": ""})
        write_json(conf_dir / "required.json.example", {"token": "EXAMPLE"})

        with pytest.raises(SystemExit) as exc_info:
            store.load("required", rules={"token": {"required": True}})

        assert exc_info.value.code == 1

    def test_required_present_passes(self, store, conf_dir):
        """A required key with a value loads."""
        write_json(conf_dir / "required.json", {"token": "abc"})
        write_json(conf_dir / "required.json.example", {"token": "EXAMPLE"})

        store.load("required", rules={"token": {"required": True}})

        assert store.get("token") == "abc"

    def test_same_as_example_exit(self, store, conf_dir):
        """A sameAsExample key must match the example exactly."""
        write_json(conf_dir / "same.json", {"coin": {"root": {"lvl2": {"lvl3": {"value": "x"}}}}})
        write_json(conf_dir / "same.json.example", {"coin": {"root": {"lvl2": {"lvl3": {"value": "y"}}}}})

        with pytest.raises(SystemExit) as exc_info:
            store.load(
                "same",
                group="coin",
                rules={"root.lvl2.lvl3.value": {"sameAsExample": True}},
            )

        assert exc_info.value.code == 1

    def test_same_as_example_passes(self, store, conf_dir):
        """Matching values pass the sameAsExample rule."""
        document = {"coin": {"root": {"lvl2": {"lvl3": {"value": "y"}}}}}
        write_json(conf_dir / "same.json", document)
        write_json(conf_dir / "same.json.example", document)

        store.load(
            "same",
            group="coin",
            rules={"root.lvl2.lvl3.value": ConfigRule(same_as_example=True)},
        )

        assert store.get("coin.root.lvl2.lvl3.value") == "y"

    def test_same_as_example_boolean_vs_number(self, lenient_store, conf_dir):
        """true in the config does not match 1 in the example."""
        write_json(conf_dir / "flags.json", {"flag": True})
        write_json(conf_dir / "flags.json.example", {"flag": 1})

        with pytest.raises(ConfigValidationError) as exc_info:
            lenient_store.load("flags", rules={"flag": {"sameAsExample": True}})

        assert exc_info.value.rule_failures == ["flag: value differs from example"]


# ============================================================
# TEST: VALIDATION REPORT
# ============================================================

class TestValidationReport:
    """Tests for the non-fatal policy and the report."""

    def test_raises_with_every_problem(self, lenient_store, conf_dir):
        """All offending keys are reported at once."""
        write_json(conf_dir / "bad.json", {"a": 1, "token": None})
        write_json(conf_dir / "bad.json.example", {"a": 1, "b": {"c": 2}, "token": "x"})

        with pytest.raises(ConfigValidationError) as exc_info:
            lenient_store.load("bad", rules={"token": {"required": True}})

        error = exc_info.value
        assert error.source == "bad"
        assert error.missing_keys == ["b.c"]
        assert error.rule_failures == ["token: value is required"]
        assert lenient_store.data == {}

    def test_report_logged_critical(self, lenient_store, conf_dir, caplog):
        """The report names the offending keys at CRITICAL."""
        write_json(conf_dir / "bad.json", {"a": 1})
        write_json(conf_dir / "bad.json.example", {"a": 1, "b": {"c": 2}})

        with caplog.at_level(logging.CRITICAL):
            with pytest.raises(ConfigValidationError):
                lenient_store.load("bad")

        assert "b.c" in caplog.text
        assert "CONFIGURATION ERROR: bad" in caplog.text

    def test_validate_without_loading(self, lenient_store):
        """validate() checks documents without touching the tree."""
        lenient_store.validate("inline", {"a": 1}, {"a": 2})

        with pytest.raises(ConfigValidationError):
            lenient_store.validate("inline", {}, {"a": 2})


# ============================================================
# TEST: LOADING
# ============================================================

class TestLoading:
    """Tests for document resolution and merging."""

    def test_no_example_skips_validation(self, store, conf_dir):
        """Sources without an example load as-is."""
        write_json(conf_dir / "plain.json", {"x": 1})

        store.load("plain")

        assert store.data == {"x": 1}
        assert store.sources == ["plain"]

    def test_env_variant_preferred(self, tmp_path, conf_dir):
        """<source>.<env>.json wins over <source>.json."""
        write_json(conf_dir / "coin.json", {"network": "test"})
        write_json(conf_dir / "coin.production.json", {"network": "main"})

        store = ConfigStore(root=tmp_path, env="production")
        store.load("coin")

        assert store.get("network") == "main"

    def test_env_without_variant_falls_back(self, tmp_path, conf_dir):
        """Without a variant the base document is used."""
        write_json(conf_dir / "coin.json", {"network": "test"})

        store = ConfigStore(root=tmp_path, env="staging")
        store.load("coin")

        assert store.get("network") == "test"

    def test_group_scopes_document(self, store, conf_dir):
        """A grouped source lands under its group key."""
        write_json(conf_dir / "coin.json", {"coin": {"symbol": "BTC"}})

        store.load("coin", group="coin")

        assert store.data == {"coin": {"symbol": "BTC"}}

    def test_group_missing_uses_whole_document(self, store, conf_dir):
        """A document without the group key is used whole."""
        write_json(conf_dir / "coin.json", {"symbol": "BTC"})

        store.load("coin", group="coin")

        assert store.get("coin.symbol") == "BTC"

    def test_sources_deep_merge(self, store, conf_dir):
        """Later sources merge into earlier ones."""
        write_json(conf_dir / "common.json", {"db": {"host": "localhost", "port": 5432}})
        write_json(conf_dir / "override.json", {"db": {"port": 6432}, "tags": ["b"]})

        store.load("common")
        store.load("override")

        assert store.data == {"db": {"host": "localhost", "port": 6432}, "tags": ["b"]}

    def test_missing_document(self, store):
        """A source without a document is a configuration error."""
        with pytest.raises(ConfigurationError):
            store.load("absent")

    def test_unreadable_document(self, store, conf_dir):
        """Malformed JSON is a configuration error."""
        conf_dir.mkdir(parents=True)
        (conf_dir / "broken.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            store.load("broken")


# ============================================================
# TEST: TREE HELPERS
# ============================================================

class TestTreeHelpers:
    """Tests for path and merge helpers."""

    def test_collect_key_paths(self):
        """Paths recurse into objects only."""
        paths = collect_key_paths({"a": 1, "b": {"c": [1, {"d": 2}]}})

        assert paths == ["a", "b", "b.c"]

    def test_collect_leaf_key_paths(self):
        """Leaf paths skip non-empty objects but keep empty ones."""
        paths = collect_key_paths({"a": 1, "b": {"c": 2}, "e": {}}, leaves_only=True)

        assert paths == ["a", "b.c", "e"]

    def test_missing_keys_are_leaves(self):
        """Only the deepest absent paths are reported."""
        missing = ConfigStore.find_missing_keys({"a": 1}, {"a": 1, "b": {"c": 2}})

        assert missing == ["b.c"]

    def test_deep_equal(self):
        """Structural equality keeps booleans apart from numbers."""
        assert deep_equal({"a": [1, {"b": "x"}]}, {"a": [1, {"b": "x"}]})
        assert deep_equal(1, 1.0)
        assert not deep_equal(True, 1)
        assert not deep_equal(0, False)
        assert not deep_equal({"a": [True]}, {"a": [1]})
        assert not deep_equal({"a": 1}, {"a": 1, "b": 2})
        assert not deep_equal([1], {"0": 1})

    def test_resolve_path_default(self):
        """Absent segments return the default."""
        assert resolve_path({"a": {"b": 1}}, "a.b") == 1
        assert resolve_path({"a": {"b": 1}}, "a.c", None) is None
        assert resolve_path({"a": 1}, "a.b", "x") == "x"

    def test_deep_merge_copies_incoming(self):
        """Merged values are not shared with the source document."""
        incoming = {"a": {"b": [1]}}
        target = deep_merge({}, incoming)

        incoming["a"]["b"].append(2)

        assert target == {"a": {"b": [1]}}

    def test_rule_coerce(self):
        """Both spellings of the example rule are accepted."""
        assert ConfigRule.coerce({"sameAsExample": True}).same_as_example is True
        assert ConfigRule.coerce({"same_as_example": True}).same_as_example is True
        assert ConfigRule.coerce({}).required is False
