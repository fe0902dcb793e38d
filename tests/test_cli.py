"""Tests for the command-line front end."""

import argparse
import json

import pytest

from x402_premium import cli

from conftest import PAYER_KEY, RECIPIENT, build_orchestrator


@pytest.fixture
def gateway(monkeypatch, chain, source, store, knowledge):
    built = {}

    def fake_create_gateway(*, config):
        built["config"] = config
        built["gateway"] = build_orchestrator(config, chain, source, store, knowledge)
        return built["gateway"]

    monkeypatch.setattr(cli, "create_gateway", fake_create_gateway)
    return built


def _argv(tmp_path, *command):
    return [
        "--env-file",
        str(tmp_path / "missing.env"),
        "--set",
        f"X402_PAYER_PRIVATE_KEY={PAYER_KEY}",
        "--set",
        f"X402_PAYMENT_ADDRESS={RECIPIENT}",
        "--set",
        "X402_RECEIPT_POLL_SECONDS=0",
        *command,
    ]


def test_env_override_parsing() -> None:
    assert cli._env_override("KEY=a=b") == ("KEY", "a=b")
    with pytest.raises(argparse.ArgumentTypeError):
        cli._env_override("no-equals")
    with pytest.raises(argparse.ArgumentTypeError):
        cli._env_override(" =value")


def test_purchase_auto_pay(tmp_path, gateway, chain, capsys) -> None:
    code = cli.run_cli(_argv(tmp_path, "purchase", "asthma", "--auto-pay"))

    assert code == 0
    assert len(chain.sent) == 1
    assert "Payment tx hash" in capsys.readouterr().out
    assert gateway["config"].payment_address == RECIPIENT


def test_purchase_without_payment_exits_nonzero(tmp_path, gateway, chain, capsys) -> None:
    code = cli.run_cli(_argv(tmp_path, "purchase", "asthma"))

    assert code == 1
    assert "Premium sources require payment" in capsys.readouterr().out
    assert chain.sent == []


def test_payment_request(tmp_path, gateway, capsys) -> None:
    code = cli.run_cli(_argv(tmp_path, "payment-request"))

    assert code == 0
    assert RECIPIENT in capsys.readouterr().out


def test_query_with_tier(tmp_path, gateway, knowledge) -> None:
    code = cli.run_cli(_argv(tmp_path, "query", "asthma", "--tier", "premium"))

    assert code == 0
    assert knowledge.queries == [{"query": "asthma", "tier": "premium"}]


def test_invalid_configuration(tmp_path, gateway) -> None:
    code = cli.run_cli(_argv(tmp_path, "--set", "X402_PAYMENT_AMOUNT=free", "payment-request"))

    assert code == 1
    assert "gateway" not in gateway


def test_json_output(tmp_path, gateway, capsys) -> None:
    code = cli.run_cli(["--json", *_argv(tmp_path, "purchase", "asthma")])

    body = json.loads(capsys.readouterr().out)
    assert code == 1
    assert body["isError"] is True
    assert body["data"]["status"] == "payment_required"


def test_purchase_then_publish_in_one_run(tmp_path, gateway, chain, knowledge, capsys) -> None:
    code = cli.run_cli(_argv(tmp_path, "purchase", "asthma", "--auto-pay", "--publish"))

    out = capsys.readouterr().out
    assert code == 0
    assert len(chain.sent) == 1
    assert len(knowledge.published) == 1
    assert "Payment tx hash" in out
    assert "Published premium sources to DKG" in out


def test_publish_skipped_when_purchase_fails(tmp_path, gateway, knowledge) -> None:
    code = cli.run_cli(_argv(tmp_path, "purchase", "asthma", "--publish"))

    assert code == 1
    assert knowledge.published == []


def test_json_output_with_publish(tmp_path, gateway, capsys) -> None:
    code = cli.run_cli(["--json", *_argv(tmp_path, "purchase", "asthma", "--auto-pay", "--publish")])

    purchased, published = json.loads(capsys.readouterr().out)
    assert code == 0
    assert "isError" not in purchased
    assert published["data"]["alreadyPublished"] is False


def test_standalone_publish_command_removed(tmp_path, gateway) -> None:
    with pytest.raises(SystemExit):
        cli.run_cli(_argv(tmp_path, "publish", "asthma"))
