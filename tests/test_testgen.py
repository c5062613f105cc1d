import pytest

from mbt.errors import TlaError
from mbt.tla.module import list_operators, module_name_of
from mbt.tla.testgen import GeneratedTest, instantiate_test, negate_assertion, strip_check_sections


def test_instantiate_writes_model_and_config(suite_dir):
    generated = instantiate_test(suite_dir / "CounterTests.tla", suite_dir / "CounterTests.cfg", "ReachTwoTest")

    assert generated.tla_file == suite_dir / "CounterTests_ReachTwoTest.tla"
    assert generated.tla_config_file == suite_dir / "CounterTests_ReachTwoTest.cfg"
    assert module_name_of(generated.tla_file) == "CounterTests_ReachTwoTest"
    assert "EXTENDS CounterTests" in generated.tla_file.read_text(encoding="utf-8")
    assert generated.tla_config_file.read_text(encoding="utf-8") == "INIT Init\nNEXT Next\n"


def test_instantiate_into_output_directory(suite_dir, tmp_path):
    out = tmp_path / "generated"

    generated = instantiate_test(suite_dir / "CounterTests.tla", suite_dir / "CounterTests.cfg", "TestReachThree", out)

    assert generated.tla_file.parent == out
    assert (out / "CounterTests.tla").is_file()
    assert (out / "Counter.tla").is_file()
    assert not (suite_dir / "CounterTests_TestReachThree.tla").exists()


def test_instantiate_unknown_operator(suite_dir):
    with pytest.raises(TlaError):
        instantiate_test(suite_dir / "CounterTests.tla", suite_dir / "CounterTests.cfg", "NoSuchTest")


def test_negate_assertion_is_idempotent(suite_dir):
    generated = instantiate_test(suite_dir / "CounterTests.tla", suite_dir / "CounterTests.cfg", "ReachTwoTest")

    negate_assertion(generated.tla_file, generated.tla_config_file, "ReachTwoTest")
    module_once = generated.tla_file.read_text(encoding="utf-8")
    config_once = generated.tla_config_file.read_text(encoding="utf-8")
    again = negate_assertion(generated.tla_file, generated.tla_config_file, "ReachTwoTest")

    assert again == generated
    assert "ReachTwoTestNeg == ~ReachTwoTest" in module_once
    assert list_operators(module_once) == ["ReachTwoTestNeg"]
    assert config_once.splitlines()[-1] == "INVARIANT ReachTwoTestNeg"
    assert generated.tla_file.read_text(encoding="utf-8") == module_once
    assert generated.tla_config_file.read_text(encoding="utf-8") == config_once


def test_negate_requires_the_operator(suite_dir):
    generated = instantiate_test(suite_dir / "CounterTests.tla", suite_dir / "CounterTests.cfg", "ReachTwoTest")

    with pytest.raises(TlaError):
        negate_assertion(generated.tla_file, generated.tla_config_file, "Missing")


def test_strip_check_sections():
    config = "CONSTANTS\n  N = 3\nINVARIANT\n  TypeOK\n  Safe\nPROPERTY Live\nINIT Init\nNEXT Next\n"

    assert strip_check_sections(config) == "CONSTANTS\n  N = 3\nINIT Init\nNEXT Next\n"


def test_generated_test_descriptor():
    payload = {"tla_file": "/m/A_T.tla", "tla_config_file": "/m/A_T.cfg", "test": "T"}

    generated = GeneratedTest.from_json(payload)

    assert generated.to_json() == payload
    with pytest.raises(TlaError):
        GeneratedTest.from_json({"tla_file": "/m/A_T.tla"})
