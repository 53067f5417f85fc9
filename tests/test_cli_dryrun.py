"""Dry-run end-to-end tests for the runnervm CLI."""

PROVISION_ARGS = (
    "--arch", "x86_64",
    "--sku", "Standard_D16s_v5",
    "--os-disk-size", "512",
    "--resource-group", "CI-7",
    "--run-id", "7",
)


# ── select-location ───────────────────────────────────────────────


def test_select_location_dry_run(run_cli, config_file):
    rc, stdout, _ = run_cli("select-location", "--config", config_file, "--sku", "Standard_D16s_v5", "--dry-run")
    assert rc == 0
    assert "[dry-run] az vm list-skus --size Standard_D16s_v5 --location eastus" in stdout
    assert "[dry-run] az vm list-usage --location eastus" in stdout
    assert "location=eastus" in stdout
    # First region already fits, so the second is never queried
    assert "--location westus" not in stdout


def test_select_location_invalid_sku(run_cli, config_file):
    rc, stdout, _ = run_cli("select-location", "--config", config_file, "--sku", "D16s_v5", "--dry-run")
    assert rc == 1
    assert "cannot extract vCPU count" in stdout


def test_missing_config(run_cli, tmp_path):
    rc, stdout, _ = run_cli(
        "select-location", "--config", str(tmp_path / "missing.yaml"), "--sku", "Standard_D4s_v5", "--dry-run"
    )
    assert rc == 1
    assert "not found" in stdout


# ── provision ─────────────────────────────────────────────────────


def test_provision_dry_run(run_cli, config_file, tmp_path):
    output = tmp_path / "github_output"
    rc, stdout, _ = run_cli(
        "provision", "--config", config_file, *PROVISION_ARGS, "--github-output", str(output), "--dry-run"
    )
    assert rc == 0
    assert "[dry-run] az group create --name CI-7 --location eastus -o none" in stdout
    assert "[dry-run] az network vnet list --resource-group ci-runners" in stdout
    assert "[dry-run] az image show --resource-group ci-runners --name x86_64_eastus_image" in stdout
    assert "[dry-run] GET https://ci-vault.vault.azure.net/secrets/pub-key" in stdout
    assert "[dry-run] az vm create" in stdout
    assert "--name x86-64-eastus-7" in stdout
    assert "[dry-run] ssh-keygen -R 10.0.0.4" in stdout
    assert "PRIVATE_IP=10.0.0.4" in stdout
    # The group outlives provision; teardown deletes it later
    assert "az group delete" not in stdout
    assert output.read_text() == "PRIVATE_IP=10.0.0.4\nLOCATION=eastus\n"


def test_provision_dry_run_with_login(run_cli, config_file):
    rc, stdout, _ = run_cli("provision", "--config", config_file, *PROVISION_ARGS, "--login", "--dry-run")
    assert rc == 0
    assert "[dry-run] az login --identity" in stdout


# ── run ───────────────────────────────────────────────────────────


def test_run_dry_run(run_cli, config_file, steps_file, tmp_path):
    output = tmp_path / "github_output"
    rc, stdout, _ = run_cli(
        "run", "--config", config_file, *PROVISION_ARGS,
        "--steps", steps_file,
        "--ssh-key", str(tmp_path / "key"),
        "--github-output", str(output),
        "--dry-run",
    )
    assert rc == 0
    assert "[dry-run] az vm create" in stdout
    assert "builder@10.0.0.4 bash -s" in stdout
    assert "[dry-run]   sudo tdnf install -y git" in stdout
    assert "[dry-run]   cargo build --workspace" in stdout
    assert "[dry-run] az group delete --name CI-7 --yes --no-wait" in stdout
    assert "build and test completed successfully" in stdout
    assert stdout.index("cargo build --workspace") < stdout.index("az group delete")
    assert "SUCCESS=true" in output.read_text()


def test_run_dry_run_with_wait_ssh(run_cli, config_file, steps_file, tmp_path):
    rc, stdout, _ = run_cli(
        "run", "--config", config_file, *PROVISION_ARGS,
        "--steps", steps_file,
        "--ssh-key", str(tmp_path / "key"),
        "--wait-ssh",
        "--dry-run",
    )
    assert rc == 0
    assert "[dry-run] Poll SSH" in stdout
    assert "ConnectTimeout=5" in stdout


def test_run_missing_steps(run_cli, config_file, tmp_path):
    rc, stdout, _ = run_cli(
        "run", "--config", config_file, *PROVISION_ARGS, "--steps", str(tmp_path / "nope.yaml"), "--dry-run"
    )
    assert rc == 1
    assert "not found" in stdout
    assert "az group create" not in stdout


# ── exec ──────────────────────────────────────────────────────────


def test_exec_dry_run(run_cli, config_file, steps_file, tmp_path):
    key = tmp_path / "key"
    key.write_text("PRIVATE")
    rc, stdout, _ = run_cli(
        "exec", "--config", config_file,
        "--address", "10.0.0.9",
        "--steps", steps_file,
        "--ssh-key", str(key),
        "--dry-run",
    )
    assert rc == 0
    assert "builder@10.0.0.9 bash -s" in stdout
    assert "[dry-run]   git clone https://example.com/repo.git" in stdout
    assert "Remote steps completed successfully." in stdout
    assert "az " not in stdout
    assert key.exists()


# ── teardown ──────────────────────────────────────────────────────


def test_teardown_dry_run(run_cli, tmp_path):
    key = tmp_path / "azure_key_7"
    key.write_text("PRIVATE")
    rc, stdout, _ = run_cli("teardown", "--resource-group", "CI-7", "--ssh-key", str(key), "--dry-run")
    assert rc == 0
    assert "[dry-run] az group exists --name CI-7" in stdout
    assert "[dry-run] az group delete --name CI-7 --yes --no-wait" in stdout
    assert f"[dry-run] rm -f {key}" in stdout
    assert key.exists()


def test_run_and_teardown_agree_on_key_path(run_cli, config_file, steps_file, tmp_path):
    env = {"HOME": str(tmp_path)}
    expected = f"{tmp_path}/.ssh/azure_key_7"

    rc, stdout, _ = run_cli(
        "run", "--config", config_file, *PROVISION_ARGS, "--steps", steps_file, "--dry-run", env=env
    )
    assert rc == 0
    assert f"-i {expected} " in stdout

    rc, stdout, _ = run_cli("teardown", "--resource-group", "CI-7", "--run-id", "7", "--dry-run", env=env)
    assert rc == 0
    assert f"[dry-run] rm -f {expected} {expected}.pub" in stdout


def test_exec_key_path_from_run_id(run_cli, config_file, steps_file, tmp_path):
    rc, stdout, _ = run_cli(
        "exec", "--config", config_file,
        "--address", "10.0.0.9",
        "--steps", steps_file,
        "--run-id", "7",
        "--dry-run",
        env={"HOME": str(tmp_path)},
    )
    assert rc == 0
    assert f"-i {tmp_path}/.ssh/azure_key_7 " in stdout
