from __future__ import annotations

import allure
import pytest

from crew_orchestrator.orchestrator.errors import ExtractionAmbiguous
from crew_orchestrator.orchestrator.extractor import (
    BARE_FENCE,
    BRACKETED_PATH,
    LABELLED_PATH,
    extract,
    extract_code_artifacts,
    extract_draft_tasks,
    first_success,
    infer_file_path,
    map_agent_type,
    normalize_priority,
    resolve_identifier,
    to_kebab_case,
)
from crew_orchestrator.orchestrator.models import AgentType, TaskPriority

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Artifact Extraction"),
]


def test_bracketed_path_wins_over_heuristic() -> None:
    artifacts, strategy = extract_code_artifacts("```ts [src/foo.ts]\ncode\n```")

    assert strategy == "bracketed_path"
    assert len(artifacts) == 1
    assert artifacts[0].path == "src/foo.ts"
    assert artifacts[0].language == "ts"
    assert artifacts[0].content == "code"
    assert artifacts[0].path_inferred is False


def test_first_matching_strategy_suppresses_looser_ones() -> None:
    text = (
        "```ts [src/a.ts]\nexport const a = 1;\n```\n"
        "Some notes.\n"
        "```ts\nexport const b = 2;\n```\n"
    )

    artifacts, strategy = extract_code_artifacts(text)

    assert strategy == "bracketed_path"
    assert [artifact.path for artifact in artifacts] == ["src/a.ts"]


def test_labelled_path_line_inside_block() -> None:
    text = "```python\n# filepath: app/main.py\nprint('hi')\n```"

    artifacts, strategy = extract_code_artifacts(text)

    assert strategy == "labelled_path"
    assert artifacts[0].path == "app/main.py"
    assert artifacts[0].content == "print('hi')"


def test_bare_fences_get_inferred_paths_in_order() -> None:
    text = (
        "```typescript\nexport const UserCard = ({ user }) => <div>{user.name}</div>;\n```\n"
        "```python\ndef parse_config(path):\n    return path\n```\n"
    )

    artifacts, strategy = extract_code_artifacts(text)

    assert strategy == "bare_fence"
    assert [artifact.path for artifact in artifacts] == [
        "src/components/user-card.tsx",
        "src/parse_config.py",
    ]
    assert all(artifact.path_inferred for artifact in artifacts)


def test_empty_blocks_are_discarded() -> None:
    artifacts, _ = extract_code_artifacts("```ts [src/empty.ts]\n   \n```")

    assert artifacts == []


def test_text_without_fences_yields_nothing() -> None:
    assert extract_code_artifacts("Just prose, no code.") == ([], None)


def test_first_success_stops_at_first_non_empty_strategy() -> None:
    text = "```js\nconsole.log(1)\n```"

    assert first_success((BRACKETED_PATH, LABELLED_PATH), text) is None
    name, blocks = first_success((BRACKETED_PATH, BARE_FENCE, LABELLED_PATH), text)
    assert name == "bare_fence"
    assert blocks[0].path is None


@pytest.mark.parametrize(
    ("language", "content", "expected"),
    [
        (
            "js",
            "describe('math', () => { it('adds', () => {}); });",
            "tests/code.js",
        ),
        ("css", ".button { color: red; }", "src/assets/code.css"),
        (
            "ts",
            "import { z } from 'zod';\nexport function buildSchema() { return z.object({}); }",
            "src/lib/build-schema.ts",
        ),
        (
            "jsx",
            "export default class Dashboard extends React.Component {}",
            "src/components/dashboard.jsx",
        ),
        ("go", 'package handlers\n\nimport "net/http"', "src/handlers.go"),
        ("brainfuck", "+++[>+<-]", "src/code.txt"),
    ],
)
def test_infer_file_path_heuristics(language, content, expected) -> None:
    assert infer_file_path(language, content) == expected


def test_markup_upgrades_script_extension() -> None:
    assert infer_file_path("js", "function App() { return <main></main>; }").endswith("app.jsx")
    assert infer_file_path("js", "function app() { return 1; }").endswith("app.js")


def test_resolve_identifier_order_and_ambiguity() -> None:
    content = "class Store {}\nfunction helper() {}"

    assert resolve_identifier(content) == "Store"
    assert resolve_identifier("export default async function loadUser() {}") == "loadUser"
    assert resolve_identifier("package com.acme.billing;") == "billing"
    with pytest.raises(ExtractionAmbiguous):
        resolve_identifier("1 + 1")


def test_to_kebab_case() -> None:
    assert to_kebab_case("UserProfileCard") == "user-profile-card"
    assert to_kebab_case("api2Client") == "api2-client"
    assert to_kebab_case("plain") == "plain"


def test_extract_draft_tasks_in_both_label_casings() -> None:
    text = (
        "Task: Build login form\n"
        "Assigned to: Frontend Agent\n"
        "Description: Email and password fields\n"
        "Priority: High\n"
        "\n"
        "TASK: Provision database\n"
        "ASSIGNED TO: DevOps Agent\n"
        "DESCRIPTION: Postgres with backups\n"
        "PRIORITY: LOW\n"
    )

    drafts = extract_draft_tasks(text)

    assert [(draft.title, draft.priority) for draft in drafts] == [
        ("Build login form", TaskPriority.HIGH),
        ("Provision database", TaskPriority.LOW),
    ]
    assert drafts[0].agent_type == AgentType.FRONTEND
    assert drafts[1].agent_type == AgentType.DEVOPS
    assert drafts[1].description == "Postgres with backups"


def test_incomplete_task_record_is_ignored() -> None:
    assert extract_draft_tasks("Task: Orphan\nPriority: high\n") == []


def test_priority_and_agent_type_normalization() -> None:
    assert normalize_priority(" MEDIUM ") == TaskPriority.MEDIUM
    assert normalize_priority("urgent") == TaskPriority.MEDIUM
    assert map_agent_type("QA Engineer") == AgentType.TESTING
    assert map_agent_type("API team") == AgentType.BACKEND
    assert map_agent_type("Solution Architect") == AgentType.ARCHITECT
    assert map_agent_type("Someone") is None


def test_extract_combines_artifacts_and_drafts() -> None:
    text = (
        "```ts [src/components/widget.tsx]\nexport const Widget = () => null;\n```\n"
        "Task: Test widget\n"
        "Assigned to: Testing Agent\n"
        "Description: Snapshot tests\n"
        "Priority: medium\n"
    )

    result = extract(text)

    assert [artifact.path for artifact in result.artifacts] == ["src/components/widget.tsx"]
    assert [draft.title for draft in result.drafts] == ["Test widget"]
    assert result.strategy == "bracketed_path"
