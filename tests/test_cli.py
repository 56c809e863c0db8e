"""Tests for the homelab command line."""
import pytest
import yaml
from typer.testing import CliRunner

from homelab.cli import app

runner = CliRunner()

CYCLE_CONFIG = {
    'services': {
        'a': {'image': 'busybox', 'depends_on': ['b'], 'enabled': True},
        'b': {'image': 'busybox', 'depends_on': ['a'], 'enabled': True},
    },
}


@pytest.fixture
def workdir(config_file, monkeypatch):
    """Run commands from the directory holding the sample homelab.yaml."""
    monkeypatch.chdir(config_file.parent)
    return config_file.parent


class TestGenerate:

    def test_generate_writes_bundle(self, workdir):
        result = runner.invoke(app, ['generate', '-o', 'out'])

        assert result.exit_code == 0
        assert "Generated" in result.output
        assert (workdir / "out" / ".domains").exists()
        assert (workdir / "out" / "docker-compose" / "node-01" / "docker-compose.yaml").exists()

    def test_second_run_changes_nothing(self, workdir):
        runner.invoke(app, ['generate', '-o', 'out'])
        result = runner.invoke(app, ['generate', '-o', 'out'])

        assert result.exit_code == 0
        assert "(0 changed)" in result.output

    def test_config_error_exits_2(self, tmp_path, monkeypatch, write_config):
        monkeypatch.chdir(tmp_path)
        write_config(CYCLE_CONFIG)

        result = runner.invoke(app, ['generate', '-o', 'out'])

        assert result.exit_code == 2
        assert "Configuration error" in result.output
        assert not (tmp_path / "out").exists()

    def test_missing_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ['generate'])

        assert result.exit_code == 2
        assert "not found" in result.output

    def test_unknown_target(self, workdir):
        result = runner.invoke(app, ['generate', '-t', 'k8s'])
        assert result.exit_code == 2

    def test_config_from_environment(self, config_file, tmp_path, monkeypatch):
        """HOMELAB_CONFIG points at the document when no --config is given."""
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.chdir(elsewhere)
        monkeypatch.setenv('HOMELAB_CONFIG', str(config_file))

        result = runner.invoke(app, ['generate', '-o', 'out', '-t', 'compose'])

        assert result.exit_code == 0
        assert (elsewhere / "out" / "docker-compose.yaml").exists()


class TestValidate:

    def test_valid(self, workdir):
        result = runner.invoke(app, ['validate'])

        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_cycle(self, tmp_path, monkeypatch, write_config):
        monkeypatch.chdir(tmp_path)
        write_config(CYCLE_CONFIG)

        result = runner.invoke(app, ['validate'])

        assert result.exit_code == 2
        assert "Circular dependency" in result.output


class TestServiceCommands:

    def test_enable(self, workdir):
        result = runner.invoke(app, ['enable', 'jellyfin'])

        assert result.exit_code == 0
        assert "Enabled jellyfin" in result.output
        document = yaml.safe_load((workdir / "homelab.yaml").read_text())
        assert document['services']['jellyfin']['enabled'] is True

    def test_enable_already_enabled(self, workdir):
        result = runner.invoke(app, ['enable', 'actual'])

        assert result.exit_code == 0
        assert "already enabled" in result.output

    def test_disable(self, workdir):
        result = runner.invoke(app, ['disable', 'actual'])

        assert result.exit_code == 0
        document = yaml.safe_load((workdir / "homelab.yaml").read_text())
        assert document['services']['actual']['enabled'] is False

    def test_enable_unknown_service(self, workdir):
        original = (workdir / "homelab.yaml").read_text()

        result = runner.invoke(app, ['enable', 'ghost'])

        assert result.exit_code == 2
        assert (workdir / "homelab.yaml").read_text() == original

    def test_status(self, workdir):
        result = runner.invoke(app, ['status'])

        assert result.exit_code == 0
        assert "3 of 4 services enabled" in result.output

    def test_list(self, workdir):
        result = runner.invoke(app, ['list'])

        assert result.exit_code == 0
        assert "Finance" in result.output
        assert "actual (Actual Budget)" in result.output


class TestDepsCommands:

    def test_order(self, workdir):
        result = runner.invoke(app, ['deps', 'order'])

        assert result.exit_code == 0
        assert result.output.index("mariadb") < result.output.index("photoprism")
        assert "jellyfin" not in result.output

    def test_order_all(self, workdir):
        result = runner.invoke(app, ['deps', 'order', '--all'])
        assert "jellyfin" in result.output

    def test_dependents(self, workdir):
        result = runner.invoke(app, ['deps', 'dependents', 'mariadb'])

        assert result.exit_code == 0
        assert "- photoprism" in result.output

    def test_no_dependents(self, workdir):
        result = runner.invoke(app, ['deps', 'dependents', 'actual'])
        assert "Nothing depends on actual" in result.output

    def test_check(self, workdir):
        result = runner.invoke(app, ['deps', 'check'])

        assert result.exit_code == 0
        assert "No circular dependencies among 4 services" in result.output

    def test_check_cycle(self, tmp_path, monkeypatch, write_config):
        monkeypatch.chdir(tmp_path)
        write_config(CYCLE_CONFIG)

        result = runner.invoke(app, ['deps', 'check'])

        assert result.exit_code == 2
        assert "a -> b -> a" in result.output

    def test_graph(self, workdir):
        result = runner.invoke(app, ['deps', 'graph'])

        assert result.exit_code == 0
        assert "# Service Dependency Graph" in result.output


class TestDeploy:

    def test_mock_deploy(self, workdir, monkeypatch):
        monkeypatch.setenv('HOMELAB_MOCK', '1')

        result = runner.invoke(app, ['deploy', '-o', 'out', '--log-file', str(workdir / 'homelab.log')])

        assert result.exit_code == 0
        assert "Deployed to 2 machines" in result.output
        assert (workdir / "out" / "docker-compose" / "manager" / "docker-compose.yaml").exists()

    def test_dry_run(self, workdir, monkeypatch):
        monkeypatch.setenv('HOMELAB_MOCK', '1')

        result = runner.invoke(app, ['deploy', '--dry-run', '-o', 'out', '--log-file', str(workdir / 'homelab.log')])

        assert result.exit_code == 0
        assert "dry_run" in result.output
        assert "nothing written" in result.output
        assert not (workdir / "out").exists()

    def test_unknown_machine(self, workdir, monkeypatch):
        monkeypatch.setenv('HOMELAB_MOCK', '1')

        result = runner.invoke(app, ['deploy', '-m', 'ghost', '-o', 'out', '--log-file', str(workdir / 'homelab.log')])

        assert result.exit_code == 2
        assert "ghost" in result.output

    def test_missing_bundle_exits_1(self, workdir, monkeypatch):
        """Without generated files every machine fails its copy step."""
        monkeypatch.setenv('HOMELAB_MOCK', '1')

        result = runner.invoke(app, [
            'deploy', '--no-generate', '-o', 'missing', '--log-file', str(workdir / 'homelab.log'),
        ])

        assert result.exit_code == 1
        assert "Deployment failed" in result.output


class TestDns:

    def test_plan(self, workdir):
        result = runner.invoke(app, ['dns', 'plan'])

        assert result.exit_code == 0
        assert "CNAME" in result.output

    def test_apply_dry_run(self, workdir, monkeypatch):
        monkeypatch.setenv('HOMELAB_MOCK', '1')

        result = runner.invoke(app, ['dns', 'apply', '--dry-run', '--log-file', str(workdir / 'homelab.log')])

        assert result.exit_code == 0
        assert "would create" in result.output

    def test_apply_mock(self, workdir, monkeypatch):
        monkeypatch.setenv('HOMELAB_MOCK', '1')

        result = runner.invoke(app, ['dns', 'apply', '--log-file', str(workdir / 'homelab.log')])

        assert result.exit_code == 0
        assert "Created" in result.output
