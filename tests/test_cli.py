"""Tests for the CLI interface."""

from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
from click.testing import CliRunner

from chatgraph.cli import main
from chatgraph.ui.console import Console

from conftest import make_conversation


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An initialised project with conversations a (6 msgs) and b (2 msgs)."""
    runner = CliRunner()
    result = runner.invoke(main, ["init", "--path", str(tmp_path)])
    assert result.exit_code == 0, f"Init failed: {result.output}"

    data = [
        make_conversation("a", 6).model_dump(mode="json"),
        make_conversation("b", 2).model_dump(mode="json"),
    ]
    export = tmp_path / "conversations.json"
    export.write_text(json.dumps(data))
    result = runner.invoke(main, ["import", str(export), "--path", str(tmp_path)])
    assert result.exit_code == 0, f"Import failed: {result.output}"
    return tmp_path


def _created_id(output: str, prefix: str) -> str:
    match = re.search(rf"({prefix}_\d+_[a-z0-9]+)", output)
    assert match, output
    return match.group(1)


class TestCLIInit:
    def test_init_creates_store(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(main, ["init", "--path", str(tmp_path)])
        assert result.exit_code == 0
        assert (tmp_path / ".chatgraph" / "config.json").exists()
        assert (tmp_path / ".chatgraph" / "chatgraph.db").exists()

    def test_init_nonexistent_path(self, runner: CliRunner):
        result = runner.invoke(main, ["init", "--path", "/nonexistent/path"])
        assert result.exit_code != 0

    def test_commands_need_store(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(main, ["list", "--path", str(tmp_path)])
        assert result.exit_code != 0


class TestCLIConversations:
    def test_list(self, runner: CliRunner, project: Path):
        result = runner.invoke(main, ["list", "--path", str(project)])
        assert result.exit_code == 0
        assert "Conversation a" in result.output

    def test_import_invalid(self, runner: CliRunner, project: Path):
        bad = project / "bad.json"
        bad.write_text(json.dumps([{"title": "no id"}]))
        result = runner.invoke(main, ["import", str(bad), "--path", str(project)])
        assert result.exit_code != 0


class TestCLILinks:
    def test_fork_and_path(self, runner: CliRunner, project: Path):
        result = runner.invoke(main, ["fork", "a", "a_m2", "--path", str(project)])
        assert result.exit_code == 0
        assert "3 messages" in result.output
        forked = _created_id(result.output, "conv_fork")

        result = runner.invoke(main, ["path", forked, "--path", str(project)])
        assert result.exit_code == 0
        assert "Conversation a" in result.output

    def test_fork_unknown_message(self, runner: CliRunner, project: Path):
        result = runner.invoke(main, ["fork", "a", "zzz", "--path", str(project)])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_continue_and_links(self, runner: CliRunner, project: Path):
        result = runner.invoke(
            main, ["continue", "b", "--copy-all", "--reason", "more", "--path", str(project)]
        )
        assert result.exit_code == 0
        link_id = _created_id(result.output, "link_cont")

        result = runner.invoke(main, ["links", "b", "--path", str(project)])
        assert result.exit_code == 0
        assert link_id in result.output

    def test_reference_and_unlink(self, runner: CliRunner, project: Path):
        result = runner.invoke(main, ["link", "a", "b", "--path", str(project)])
        assert result.exit_code == 0
        link_id = _created_id(result.output, "link_ref")

        result = runner.invoke(main, ["unlink", link_id, "--path", str(project)])
        assert result.exit_code == 0
        result = runner.invoke(main, ["unlink", link_id, "--path", str(project)])
        assert result.exit_code == 1

    def test_parent_link_cycle_rejected(self, runner: CliRunner, project: Path):
        result = runner.invoke(main, ["link", "a", "b", "--parent", "--path", str(project)])
        assert result.exit_code == 0
        result = runner.invoke(main, ["link", "b", "a", "--parent", "--path", str(project)])
        assert result.exit_code == 1
        assert "cycle" in result.output

    def test_graph(self, runner: CliRunner, project: Path):
        runner.invoke(main, ["link", "a", "b", "--path", str(project)])
        result = runner.invoke(main, ["graph", "--path", str(project)])
        assert result.exit_code == 0
        assert "Conversation b" in result.output

        result = runner.invoke(main, ["graph", "--stats", "--path", str(project)])
        assert result.exit_code == 0
        assert "Components" in result.output


class TestGraphView:
    @pytest.mark.asyncio
    async def test_deep_continuation_chain(self, service, seeded):
        tip = "a"
        for step in range(1500):
            continued, _ = await service.continue_from(tip, title=f"Step {step}")
            tip = continued.id

        tree = Console().graph_tree(await service.build_graph())

        depth = 0
        level = tree.children
        while level:
            depth += 1
            level = level[0].children
        assert depth == 1501
        assert tip in str(_deepest_label(tree))

    @pytest.mark.asyncio
    async def test_shared_target_listed_once(self, service, seeded):
        await service.reference("a", "c")
        await service.reference("b", "c")

        tree = Console().graph_tree(await service.build_graph())
        labels = [str(node.label) for node in _walk(tree)]
        c_labels = [label for label in labels if "Conversation c" in label]
        assert len(c_labels) == 2
        assert sum("(seen)" in label for label in c_labels) == 1


def _walk(tree):
    stack = list(tree.children)
    while stack:
        node = stack.pop()
        yield node
        stack.extend(node.children)


def _deepest_label(tree):
    node = tree
    while node.children:
        node = node.children[0]
    return node.label


class TestCLIContext:
    def test_context(self, runner: CliRunner, project: Path):
        result = runner.invoke(
            main,
            ["context", "a", "--max-tokens", "80", "--strategy", "recent",
             "--render", "--path", str(project)],
        )
        assert result.exit_code == 0
        assert "Truncated using recent strategy" in result.output
        assert "a5w0" in result.output

    def test_context_missing(self, runner: CliRunner, project: Path):
        result = runner.invoke(main, ["context", "zzz", "--path", str(project)])
        assert result.exit_code == 1


class TestCLIConfig:
    def test_set_and_show(self, runner: CliRunner, project: Path):
        result = runner.invoke(
            main, ["config", "set", "context.truncation_strategy", "recent", "--path", str(project)]
        )
        assert result.exit_code == 0
        result = runner.invoke(main, ["config", "show", "--path", str(project)])
        assert result.exit_code == 0
        assert '"truncation_strategy": "recent"' in result.output

    def test_set_unknown_key(self, runner: CliRunner, project: Path):
        result = runner.invoke(main, ["config", "set", "nope.key", "1", "--path", str(project)])
        assert result.exit_code == 1

    def test_broken_config_reported(self, runner: CliRunner, project: Path):
        (project / ".chatgraph" / "config.json").write_text("{not json")
        for args in (["list"], ["context", "a"], ["config", "show"]):
            result = runner.invoke(main, [*args, "--path", str(project)])
            assert result.exit_code == 1
            assert "Invalid config" in result.output
            assert result.exception is None or isinstance(result.exception, SystemExit)
