import io
import logging
import stat
import sys
import threading
from dataclasses import replace
from pathlib import Path

import pytest

from mbt.artifacts.cache import ArtifactCache
from mbt.artifacts.manifest import ToolManifest
from mbt.checker.runner import ProcessRunner
from mbt.config import load_config
from mbt.wiring import build_dispatcher

COUNTER_TLA = """---------------------------- MODULE Counter ----------------------------
EXTENDS Naturals

VARIABLE x

Init == x = 0

Next == x' = x + 1

TypeOK == x \\in Nat

=============================================================================
"""

COUNTER_TESTS_TLA = """------------------------- MODULE CounterTests -------------------------
EXTENDS Counter

\\* Reachability tests
ReachTwoTest == x = 2

TestReachThree == x = 3

Helper == x > 10

=============================================================================
"""

COUNTER_TESTS_CFG = """INIT Init
NEXT Next
INVARIANT TypeOK
"""

# Stand-in for the JVM: imitates TLC (-tool mode) and Apalache based on the
# model file name.
#   *Broken*  -> spec error
#   *Pass*    -> no counterexample
#   *Slow*    -> sleeps past any test timeout
#   *Many*    -> Apalache reports up to two counterexamples
#   otherwise -> two-state counterexample
# FAKE_JAVA_LOG, when set, receives one line of arguments per run.
FAKE_JAVA = '''#!{python}
import os
import sys
import time

argv = sys.argv[1:]
if os.environ.get("FAKE_JAVA_LOG"):
    with open(os.environ["FAKE_JAVA_LOG"], "a") as log:
        log.write(" ".join(argv) + "\\n")


def tlc(tla_file):
    if "Broken" in tla_file:
        print("@!@!@STARTMSG 2221:1 @!@!@")
        print("Semantic error in " + tla_file)
        print("@!@!@ENDMSG 2221 @!@!@")
        sys.exit(150)
    if "Slow" in tla_file:
        time.sleep(60)
    if "Pass" in tla_file:
        print("Model checking completed. No error has been found.")
        sys.exit(0)
    print("@!@!@STARTMSG 2110:1 @!@!@")
    print("Invariant is violated.")
    print("@!@!@ENDMSG 2110 @!@!@")
    print("@!@!@STARTMSG 2217:4 @!@!@")
    print("1: <Initial predicate>")
    print("/\\\\ x = 0")
    print("@!@!@ENDMSG 2217 @!@!@")
    print("@!@!@STARTMSG 2217:4 @!@!@")
    print("2: <Next line 8, col 9 to line 8, col 19 of module Counter>")
    print("/\\\\ x = 1")
    print("@!@!@ENDMSG 2217 @!@!@")
    sys.exit(12)


def apalache_check(tla_file):
    if "Broken" in tla_file:
        print("Parser error in " + tla_file)
        sys.exit(75)
    if "Pass" in tla_file:
        print("The outcome is: NoError")
        sys.exit(0)
    max_error = int([arg for arg in argv if arg.startswith("--max-error=")][0].split("=", 1)[1])
    count = min(max_error, 2) if "Many" in tla_file else 1
    out = os.path.join("_apalache-out", "run")
    os.makedirs(out, exist_ok=True)
    for index in range(1, count + 1):
        path = os.path.join(out, "counterexample%d.tla" % index)
        last_state = "State1 == x = %d\\n\\n" % index
        with open(path, "w") as fh:
            fh.write(
                "---------------------------- MODULE counterexample ----------------------------\\n"
                "EXTENDS " + tla_file[:-4] + "\\n\\n"
                "(* Constant initialization state *)\\n"
                "ConstInit == TRUE\\n\\n"
                "(* Initial state *)\\n"
                "State0 == x = 0\\n\\n"
                "(* Transition 0 to State1 *)\\n"
                + last_state
                + "InvariantViolation == TRUE\\n\\n"
                "================================================================================\\n"
            )
        print("State 1: state invariant 0 violated. Check the trace in: " + path)
    print("The outcome is: Error")
    sys.exit(12)


def apalache_parse(output, tla_file):
    with open(tla_file) as src, open(output, "w") as dst:
        dst.write("\\\\* flattened\\n" + src.read())
    sys.exit(0)


if "tlc2.TLC" in argv:
    tlc(argv[argv.index("tlc2.TLC") + 1])
elif "-jar" in argv:
    command = argv[argv.index("-jar") + 2]
    if command == "check":
        apalache_check(argv[-1])
    elif command == "parse":
        output = [arg for arg in argv if arg.startswith("--output=")][0].split("=", 1)[1]
        apalache_parse(output, argv[-1])
print("unexpected arguments: " + " ".join(argv), file=sys.stderr)
sys.exit(1)
'''


def write_suite(directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "Counter.tla").write_text(COUNTER_TLA, encoding="utf-8")
    (directory / "CounterTests.tla").write_text(COUNTER_TESTS_TLA, encoding="utf-8")
    (directory / "CounterTests.cfg").write_text(COUNTER_TESTS_CFG, encoding="utf-8")
    return directory


class FakeFetch:
    """Serves fixed bytes for every URL and counts the requests."""

    def __init__(self, data: bytes = b"jar-bytes"):
        self.data = data
        self.urls = []
        self._lock = threading.Lock()

    def __call__(self, url):
        with self._lock:
            self.urls.append(url)
        return io.BytesIO(self.data)


@pytest.fixture
def suite_dir(tmp_path):
    return write_suite(tmp_path / "spec")


@pytest.fixture
def fake_java(tmp_path):
    script = tmp_path / "bin" / "java"
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text(FAKE_JAVA.replace("{python}", sys.executable), encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def engine_config(tmp_path, fake_java):
    config = load_config(search=False, env={}).with_cache_dir(tmp_path / "cache")
    return replace(config, checker=replace(config.checker, java=str(fake_java), timeout_s=30.0))


@pytest.fixture
def fake_fetch():
    return FakeFetch()


@pytest.fixture
def dispatcher(engine_config, fake_fetch):
    cache = ArtifactCache(
        engine_config.cache.dir,
        ToolManifest.from_config(engine_config),
        fetch=fake_fetch,
        retry_backoff_s=0,
    )
    return build_dispatcher(engine_config, cache=cache, runner=ProcessRunner(default_timeout=30.0))


@pytest.fixture(autouse=True)
def _restore_mbt_logger():
    # The CLI configures the "mbt" logger in-process; keep that out of other tests.
    logger = logging.getLogger("mbt")
    handlers, level, propagate = logger.handlers[:], logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
