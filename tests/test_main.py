import sys

import pytest

from poolkeeper import main as main_module

JENKINS = [
    "--jenkins-master", "jenkins.internal",
    "--username", "admin",
    "--password", "secret",
]


def run_main(mocker, argv):
    mocker.patch.object(sys, "argv", ["poolkeeper", *argv])
    main_module.main()


def test_mode_is_required(mocker, capsys):
    with pytest.raises(SystemExit) as exc:
        run_main(mocker, ["--pool", "ci"])
    assert exc.value.code == 2
    assert "--sync --status --provision" in capsys.readouterr().err


def test_modes_are_exclusive(mocker):
    with pytest.raises(SystemExit):
        run_main(mocker, ["--sync", "--status"])


def test_sync_requires_credentials_and_config(mocker, capsys):
    with pytest.raises(SystemExit):
        run_main(mocker, ["--sync", "--pool", "ci", *JENKINS])
    err = capsys.readouterr().err
    assert "--credentials-id" in err
    assert "--config" in err


def test_provision_does_not_need_jenkins(mocker):
    # Mock the mode so nothing touches AWS
    run = mocker.patch("poolkeeper.modes.provision.run_provision")

    run_main(mocker, ["--provision", "--pool", "ci", "--config", "pool.json"])

    run.assert_called_once()
    args = run.call_args[0][0]
    assert args.pool == "ci"
    assert args.config == "pool.json"


def test_sync_dispatch(mocker):
    run = mocker.patch("poolkeeper.modes.sync.run_sync")

    run_main(
        mocker,
        ["--sync", "--pool", "ci", "--config", "pool.json",
         "--credentials-id", "worker-ssh", *JENKINS],
    )

    args = run.call_args[0][0]
    assert args.port == 8080
    assert args.credentials_id == "worker-ssh"


def test_mode_failure_exits_nonzero(mocker):
    mocker.patch(
        "poolkeeper.modes.status.run_status", side_effect=RuntimeError("boom")
    )
    mock_logger = mocker.patch.object(main_module, "logger")

    with pytest.raises(SystemExit) as exc:
        run_main(mocker, ["--status", "--pool", "ci", *JENKINS])

    assert exc.value.code == 1
    mock_logger.error.assert_called_once_with("Status Failed: boom")
