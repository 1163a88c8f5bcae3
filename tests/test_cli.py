"""CLI tests: every run writes a result file, failures only reach the log."""
from pathlib import Path

import pytest
from typer.testing import CliRunner

from reffinder.config import Config
from reffinder.main import app


runner = CliRunner()

PUBLIC_SURFACE_HEADER = (b"MemberKind,Accessibility,DeclaringNamespace,DeclaringType,Declaration,"
                         b"ReferenceNamespace,ReferenceType,ReferenceMember,LineNumber,CodeLine,FilePath\r\n")
CONST_FIELDS_HEADER = (b"FieldDeclaration,FieldDeclaringType,ReferenceType,ReferenceMember,"
                       b"LineNumber,FilePath,CodeLine\r\n")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate every run from the caller's environment and .env file."""
    for name in ("REFFINDER_DIALECT", "REFFINDER_OUTPUT_DIR", "REFFINDER_TOOL_NAME"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _result_files(directory: Path):
    return sorted(directory.glob("ReferenceFinderResult_*.csv"))


def test_no_arguments_prints_usage_and_writes_header(tmp_path):
    out = tmp_path / "out"
    out.mkdir()

    result = runner.invoke(app, ["--output-dir", str(out)])

    assert result.exit_code == 0
    assert "Usage: reffinder <solution.sln>" in result.output
    files = _result_files(out)
    assert len(files) == 1
    assert files[0].read_bytes() == PUBLIC_SURFACE_HEADER
    assert f"Result file: {files[0]}" in result.output


def test_missing_solution(tmp_path):
    result = runner.invoke(app, [str(tmp_path / "Missing.sln"), "-o", str(tmp_path)])

    assert result.exit_code == 0
    assert "Solution file does not exist:" in result.output
    assert len(_result_files(tmp_path)) == 1


def test_unopenable_solution_is_logged(tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("not a solution", encoding="utf-8")

    result = runner.invoke(app, [str(notes), "-o", str(tmp_path)])

    assert result.exit_code == 0
    assert "Target solution:" in result.output
    assert "Error while opening the solution: Unsupported solution file type: notes.txt" in result.output
    assert _result_files(tmp_path)[0].read_bytes() == PUBLIC_SURFACE_HEADER


def test_const_only_uses_seven_columns(tmp_path):
    result = runner.invoke(app, ["--const-only", "-o", str(tmp_path)])

    assert result.exit_code == 0
    assert _result_files(tmp_path)[0].read_bytes() == CONST_FIELDS_HEADER


def test_audit_of_a_project(tmp_path):
    project = tmp_path / "Core"
    project.mkdir()
    (project / "Core.csproj").write_text('<Project Sdk="Microsoft.NET.Sdk" />', encoding="utf-8")
    (project / "Limits.cs").write_text(
        "namespace Core\n"
        "{\n"
        "    public class Limits\n"
        "    {\n"
        "        public const int Max = 10;\n"
        "        public int Twice() { return Max * 2; }\n"
        "    }\n"
        "}\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, [str(project / "Core.csproj"), "--const-only", "-o", str(tmp_path)])

    assert result.exit_code == 0
    assert "Public const fields: 1" in result.output
    assert "Limits: public const int Max = 10;" in result.output
    lines = _result_files(tmp_path)[0].read_bytes().decode("utf-8").split("\r\n")
    assert lines[1] == (f"public const int Max = 10;,Limits,Limits,Twice,6,"
                        f"{(project / 'Limits.cs').resolve()},public int Twice() {{ return Max * 2; }}")


def test_absolute_compile_glob(tmp_path):
    shared = tmp_path / "Shared"
    shared.mkdir()
    (shared / "Limits.cs").write_text(
        "namespace Shared { public class Limits { public const int Max = 10; } }", encoding="utf-8")
    project = tmp_path / "Core"
    project.mkdir()
    (project / "Core.csproj").write_text(
        '<Project Sdk="Microsoft.NET.Sdk">\n'
        f'  <ItemGroup><Compile Include="{shared.as_posix()}/*.cs" /></ItemGroup>\n'
        '</Project>\n',
        encoding="utf-8",
    )

    result = runner.invoke(app, [str(project / "Core.csproj"), "--const-only", "-o", str(tmp_path)])

    assert result.exit_code == 0
    assert "Public const fields: 1" in result.output
    assert len(_result_files(tmp_path)) == 1


def test_any_open_failure_is_logged(tmp_path, monkeypatch):
    async def broken_open(path, dialect):
        raise RuntimeError("descriptor exploded")

    monkeypatch.setattr("reffinder.main.open_program_model", broken_open)
    solution = tmp_path / "App.sln"
    solution.write_text("", encoding="utf-8")

    result = runner.invoke(app, [str(solution), "-o", str(tmp_path)])

    assert result.exit_code == 0
    assert "Error while opening the solution: descriptor exploded" in result.output
    assert _result_files(tmp_path)[0].read_bytes() == PUBLIC_SURFACE_HEADER


def test_result_file_is_written_when_the_audit_fails(tmp_path, monkeypatch):
    async def failing_audit(*args):
        raise RuntimeError("audit failed")

    monkeypatch.setattr("reffinder.main.run_audit", failing_audit)
    project = tmp_path / "Core.csproj"
    project.write_text('<Project Sdk="Microsoft.NET.Sdk" />', encoding="utf-8")

    result = runner.invoke(app, [str(project), "-o", str(tmp_path)])

    assert result.exit_code == 1
    assert isinstance(result.exception, RuntimeError)
    assert len(_result_files(tmp_path)) == 1


def test_output_dir_from_environment(tmp_path, monkeypatch):
    out = tmp_path / "reports"
    out.mkdir()
    monkeypatch.setenv("REFFINDER_OUTPUT_DIR", str(out))
    monkeypatch.setenv("REFFINDER_TOOL_NAME", "Audit")

    result = runner.invoke(app, [])

    assert result.exit_code == 0
    assert len(list(out.glob("AuditResult_*.csv"))) == 1


def test_unknown_dialect_in_environment_fails(tmp_path, monkeypatch):
    monkeypatch.setenv("REFFINDER_DIALECT", "cobol")

    result = runner.invoke(app, ["-o", str(tmp_path)])

    assert result.exit_code == 1
    assert "Unsupported dialect: cobol" in result.output
    assert _result_files(tmp_path) == []


def test_dialect_option_overrides_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("REFFINDER_DIALECT", "cobol")

    result = runner.invoke(app, ["--dialect", "VB", "-o", str(tmp_path)])

    assert result.exit_code == 0
    assert len(_result_files(tmp_path)) == 1


class TestConfig:
    """Environment-backed settings."""

    def test_defaults(self, tmp_path):
        config = Config()
        assert config.dialect_name == "csharp"
        assert config.dialect.encoding == "utf-8"
        assert config.output_dir == tmp_path
        assert config.tool_name == "ReferenceFinder"

    def test_visual_basic_uses_cp932(self, monkeypatch):
        monkeypatch.setenv("REFFINDER_DIALECT", " VB ")
        assert Config().dialect.encoding == "cp932"

    def test_dotenv_in_working_directory(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("REFFINDER_TOOL_NAME=FromDotenv\n", encoding="utf-8")
        # load_dotenv writes into os.environ; registering the name restores it on teardown
        monkeypatch.setenv("REFFINDER_TOOL_NAME", "")
        monkeypatch.delenv("REFFINDER_TOOL_NAME")

        assert Config().tool_name == "FromDotenv"
