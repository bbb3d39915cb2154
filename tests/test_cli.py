"""
StealthPay - CLI Tests
========================
Tests for the typer command line interface (offline commands).
"""

from typer.testing import CliRunner

from stealth_pay.cli.main import app


runner = CliRunner()


class TestCLI:
    """Test CLI commands that need no node"""

    def test_version(self):
        """Test version command"""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "protocol_version" in result.output

    def test_keys_derive(self):
        """Test key derivation from a local wallet key"""
        result = runner.invoke(app, ["keys", "derive", "--private-key", "0x01"])

        assert result.exit_code == 0
        assert "Stealth Keys" in result.output
        assert "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf" in result.output

    def test_keys_derive_invalid_key(self):
        """Test malformed private key"""
        result = runner.invoke(app, ["keys", "derive", "--private-key", "0xzz"])

        assert result.exit_code == 1

    def test_pay_address(self, meta_address):
        """Test stealth address generation from a meta-address"""
        result = runner.invoke(app, ["pay", "address", "--meta", meta_address.to_hex(), "--k", "3"])

        assert result.exit_code == 0
        assert "Stealth Payment" in result.output

    def test_pay_address_requires_recipient(self):
        """Test missing --meta and --recipient"""
        result = runner.invoke(app, ["pay", "address"])

        assert result.exit_code == 1

    def test_pay_address_invalid_meta(self):
        """Test malformed meta-address"""
        result = runner.invoke(app, ["pay", "address", "--meta", "0x1234"])

        assert result.exit_code == 1

    def test_invalid_network_option(self):
        """Test global option validation"""
        result = runner.invoke(app, ["--network", "moon", "version"])

        assert result.exit_code == 1
