import os
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DB_PATH", ":memory:")

from core.types import ContentRule, RuleKind
from filters.content import ContentMatcher, match, validate_rule


class ContentMatcherTest(unittest.TestCase):
    def setUp(self):
        self.matcher = ContentMatcher()

    def test_highest_severity_wins(self):
        low = ContentRule(pattern="a", kind=RuleKind.PHRASE, severity=1, id=1)
        high = ContentRule(pattern="ab", kind=RuleKind.PHRASE, severity=5, id=2)
        self.assertIs(self.matcher.match("xaby", [low, high]), high)

    def test_invalid_regex_is_skipped(self):
        broken = ContentRule(pattern="([", kind=RuleKind.REGEX, severity=5, id=1)
        word = ContentRule(pattern="casino", kind=RuleKind.WORD, severity=1, id=2)
        with self.assertLogs("filters.content", level="ERROR"):
            self.assertIs(self.matcher.match("best casino online", [broken, word]), word)

    def test_word_is_exact_token(self):
        rule = ContentRule(pattern="cat", kind=RuleKind.WORD, severity=3)
        self.assertIsNone(self.matcher.match("let's concatenate strings", [rule]))
        self.assertIs(self.matcher.match("My CAT, again!", [rule]), rule)

    def test_phrase_is_case_insensitive_substring(self):
        rule = ContentRule(pattern="free money", kind=RuleKind.PHRASE, severity=3)
        self.assertIs(self.matcher.match("Get FREE MONEY today", [rule]), rule)
        self.assertIsNone(self.matcher.match("free as in money", [rule]))

    def test_regex_is_case_insensitive(self):
        rule = ContentRule(pattern=r"fr[e3]{2}\s+c[o0]ins", kind=RuleKind.REGEX, severity=4)
        self.assertIs(self.matcher.match("FR33 C0INS here", [rule]), rule)

    def test_link_checks_extracted_urls_only(self):
        rule = ContentRule(pattern="bit.ly", kind=RuleKind.LINK, severity=2)
        self.assertIs(self.matcher.match("go to https://BIT.LY/xyz now", [rule]), rule)
        self.assertIsNone(self.matcher.match("I never click bit.ly links", [rule]))

    def test_no_rules_or_no_text(self):
        rule = ContentRule(pattern="spam", kind=RuleKind.WORD, severity=1)
        self.assertIsNone(self.matcher.match("spam", []))
        self.assertIsNone(self.matcher.match("", [rule]))
        self.assertIsNone(self.matcher.match("nothing to see", [rule]))

    def test_module_level_match(self):
        rule = ContentRule(pattern="spam", kind=RuleKind.WORD, severity=1)
        self.assertIs(match("this is spam", [rule]), rule)


class ValidateRuleTest(unittest.TestCase):
    def test_rejects_bad_patterns(self):
        with self.assertRaises(ValueError):
            validate_rule("([", RuleKind.REGEX)
        with self.assertRaises(ValueError):
            validate_rule("   ", RuleKind.WORD)

    def test_accepts_good_patterns(self):
        validate_rule(r"\bcasino\b", RuleKind.REGEX)
        validate_rule("([", RuleKind.PHRASE)


if __name__ == "__main__":
    unittest.main()
