import pytest

from mbt.errors import ModuleNameError, NoTestFound, TlaError
from mbt.tla.module import (
    TlaFileSuite,
    extends_of,
    gather_dependencies,
    insert_before_end,
    list_operators,
    list_tests,
    list_tests_in,
    module_name,
    module_name_of,
    strip_comments,
)


def test_module_name_ignores_comments():
    text = "(* ---- MODULE Fake ---- *)\n\\* ---- MODULE AlsoFake ----\n------ MODULE Real ------\n====\n"

    assert module_name(text) == "Real"


def test_module_name_requires_a_header(tmp_path):
    path = tmp_path / "Empty.tla"
    path.write_text("VARIABLE x\n", encoding="utf-8")

    with pytest.raises(ModuleNameError):
        module_name_of(path)
    with pytest.raises(TlaError):
        module_name_of(tmp_path / "Missing.tla")


def test_list_tests_in_source_order(suite_dir):
    assert list_tests_in(suite_dir / "CounterTests.tla") == ["ReachTwoTest", "TestReachThree"]


def test_negated_operators_are_not_tests():
    text = "---- MODULE T ----\nATest == TRUE\nATestNeg == ~ATest\nOtherNeg == FALSE\nBTest(x) == x\n====\n"

    assert list_tests(text) == ["ATest"]


def test_no_tests_found(tmp_path):
    path = tmp_path / "Plain.tla"
    path.write_text("---- MODULE Plain ----\nInit == TRUE\n====\n", encoding="utf-8")

    with pytest.raises(NoTestFound):
        list_tests_in(path)


def test_commented_definitions_are_skipped():
    text = "---- MODULE T ----\n(* OldTest == TRUE *)\n\\* DeadTest == TRUE\nLiveTest == \"(* not a comment\"\n====\n"

    assert list_operators(text) == ["LiveTest"]
    assert "OldTest" not in strip_comments(text)
    assert strip_comments(text).count("\n") == text.count("\n")


def test_extends_and_dependencies(suite_dir):
    assert extends_of((suite_dir / "CounterTests.tla").read_text(encoding="utf-8")) == ["Counter"]

    deps = gather_dependencies(suite_dir / "CounterTests.tla")

    # Naturals is a standard module and never looked up on disk.
    assert deps == [suite_dir / "Counter.tla"]


def test_missing_user_modules_are_left_to_the_library(tmp_path):
    path = tmp_path / "A.tla"
    path.write_text("---- MODULE A ----\nEXTENDS Sequences, Apalache, B\n====\n", encoding="utf-8")
    (tmp_path / "B.tla").write_text("---- MODULE B ----\nEXTENDS A\n====\n", encoding="utf-8")

    assert gather_dependencies(path) == [tmp_path / "B.tla"]


def test_suite_copy_is_self_contained(suite_dir, tmp_path):
    suite = TlaFileSuite.gather(suite_dir / "CounterTests.tla", suite_dir / "CounterTests.cfg")

    copy = suite.copy_to(tmp_path / "copy")

    assert copy.tla_file == tmp_path / "copy" / "CounterTests.tla"
    assert copy.config_file == tmp_path / "copy" / "CounterTests.cfg"
    assert copy.dependencies == (tmp_path / "copy" / "Counter.tla",)
    assert copy.dependencies[0].read_text(encoding="utf-8") == (suite_dir / "Counter.tla").read_text(encoding="utf-8")


def test_suite_requires_the_config(suite_dir):
    with pytest.raises(TlaError):
        TlaFileSuite.gather(suite_dir / "CounterTests.tla", suite_dir / "Missing.cfg")


def test_insert_before_end():
    text = "---- MODULE M ----\nA == 1\n====\n"

    assert insert_before_end(text, "B == 2") == "---- MODULE M ----\nA == 1\n\nB == 2\n\n====\n"
    with pytest.raises(TlaError):
        insert_before_end("---- MODULE M ----\n", "B == 2")
