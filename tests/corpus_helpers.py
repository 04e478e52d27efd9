from __future__ import annotations

STANDARDS_DIR = "docs/standards"

DEFAULT_LEXICON: dict[str, object] = {
    "precedence": ["security", "testing", "style"],
    "intents": [
        {"key": "auth", "category": "security", "synonyms": ["login", "authentication"]},
        {"key": "testing", "category": "testing", "synonyms": ["tests", "coverage"]},
        {"key": "naming", "category": "style", "synonyms": []},
    ],
}

ROOT_DISPATCHER = """
# Root Dispatcher

<conditional-block task-condition="auth|login" context-check="root-auth">
REQUEST: "Security rules from security/auth.md#session-handling"
</conditional-block>

<conditional-block task-condition="testing" context-check="root-testing">
REQUEST: "Testing rules from ./testing/testing.md"
</conditional-block>
"""

AUTH_STANDARD = """
# Auth

## Session Handling

Use secure cookies.
"""

TESTING_STANDARD = """
# Testing

<verification-block context-check="verify-testing">
<test name="has_readme">
TEST: test -f README.md
REQUIRED: true
ERROR: "README missing"
FIX_COMMAND: "Add a README to ${PROJECT_NAME}"
</test>
</verification-block>
"""

DEFAULT_CORPUS: dict[str, str] = {
    "standards.md": ROOT_DISPATCHER,
    "security/auth.md": AUTH_STANDARD,
    "testing/testing.md": TESTING_STANDARD,
}
