from .module import TlaFileSuite, list_tests, list_tests_in, module_name, module_name_of
from .testgen import GeneratedTest, instantiate_test, negate_assertion, negated_name

__all__ = [
    "GeneratedTest",
    "TlaFileSuite",
    "instantiate_test",
    "list_tests",
    "list_tests_in",
    "module_name",
    "module_name_of",
    "negate_assertion",
    "negated_name",
]
