"""User-agent classification."""
from .classifier import UserAgentClassifier
from .rules import load_ruleset, parse_ruleset

__all__ = ["UserAgentClassifier", "load_ruleset", "parse_ruleset"]
