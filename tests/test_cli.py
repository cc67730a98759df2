"""Tests for the o11n-deploy command line entry point."""

from unittest.mock import patch

import pytest

from o11n_deploy.__main__ import (
    EXIT_CANCELLED,
    EXIT_FAILURE,
    EXIT_RESTART_FAILED,
    EXIT_SUCCESS,
    build_parser,
    main,
)
from o11n_deploy.core.exceptions import DeploymentCancelledError, DeploymentError, RemoteRejectedError
from o11n_deploy.deploy.models import DeploymentOutcome, DeploymentResult, ServiceStatus


def _run_with_result(argv, result=None, error=None):
    with patch("o11n_deploy.__main__.DeploymentOrchestrator") as Orchestrator:
        if error is not None:
            Orchestrator.return_value.run.side_effect = error
        else:
            Orchestrator.return_value.run.return_value = result
        code = main(argv)
    return code, Orchestrator


def test_parser_leaves_unset_flags_as_none():
    args = build_parser().parse_args([])

    assert args.server is None
    assert args.overwrite is None
    assert args.restart_service is None
    assert args.insecure_tls is None


def test_flags_reach_settings(bundle_dir):
    argv = [
        "--server", "vro.example.com",
        "--plugin-path", str(bundle_dir),
        "--plugin-name", "o11nplugin-demo-1.0",
        "--plugin-type", "VMOAPP",
        "--no-overwrite",
        "--restart",
        "--config-password", "s3cret",
        "--plugin-port", "0",
        "--secure-tls",
    ]
    code, Orchestrator = _run_with_result(argv, DeploymentResult(DeploymentOutcome.SUCCESS))

    assert code == EXIT_SUCCESS
    settings = Orchestrator.call_args.args[0]
    assert settings.server == "vro.example.com"
    assert settings.plugin_type.value == "VMOAPP"
    assert settings.overwrite is False
    assert settings.restart_service is True
    assert settings.plugin_service_port == 8281
    assert settings.insecure_tls is False


def test_config_file_is_loaded(tmp_path):
    config_file = tmp_path / "deploy.yaml"
    config_file.write_text("server: vro.from-file\nplugin_file_name: demo\n")

    code, Orchestrator = _run_with_result(["--config", str(config_file)], DeploymentResult(DeploymentOutcome.SUCCESS))

    assert code == EXIT_SUCCESS
    assert Orchestrator.call_args.args[0].server == "vro.from-file"


def test_invalid_configuration_exits_with_failure(tmp_path):
    code, Orchestrator = _run_with_result(["--config", str(tmp_path / "missing.yaml")])

    assert code == EXIT_FAILURE
    Orchestrator.assert_not_called()


@pytest.mark.parametrize(
    "outcome,expected",
    [
        (DeploymentOutcome.SUCCESS, EXIT_SUCCESS),
        (DeploymentOutcome.SUCCESS_WITH_WARNINGS, EXIT_SUCCESS),
        (DeploymentOutcome.RESTART_FAILED, EXIT_RESTART_FAILED),
    ],
)
def test_exit_codes_follow_outcome(outcome, expected):
    code, _ = _run_with_result([], DeploymentResult(outcome, final_status=ServiceStatus.RUNNING))

    assert code == expected


def test_deployment_error_exits_with_failure(capsys):
    try:
        raise RemoteRejectedError("The provided user is not authorized", status_code=403)
    except RemoteRejectedError as cause:
        try:
            raise DeploymentError("upload", "Plug-in upload has failed.") from cause
        except DeploymentError as e:
            error = e

    code, _ = _run_with_result(["--log-format", "json"], error=error)

    assert code == EXIT_FAILURE
    out = capsys.readouterr().out
    assert "upload phase failed" in out
    assert "RemoteRejectedError" in out


def test_cancelled_exit_code():
    code, _ = _run_with_result([], error=DeploymentCancelledError())

    assert code == EXIT_CANCELLED


def test_lowercase_plugin_type_rejected_by_parser():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--plugin-type", "dar"])
