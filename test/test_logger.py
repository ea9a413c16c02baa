import pamacbox.globals as G
from conftest import use_config
from pamacbox import logger, provision
from pamacbox.operations.api import Operation, OperationResult, operation

@operation("sample")
def sample(nested_message: bool = False,
           name=None,
           check: bool = True,
           op: Operation = Operation.internal_use_only) -> OperationResult:
    _ = (name, check)
    op.desc("thing")
    op.initial_state(done=False)
    op.final_state(done=True)
    if nested_message:
        logger.dry_run("touch /tmp/thing")
    return op.success()

def test_colors(config, monkeypatch, capsys):
    _ = config
    use_config(monkeypatch, no_color=False)
    logger.step("Checking system requirements")
    logger.success("done")
    out = capsys.readouterr().out
    assert "\x1b[1;34m==>\x1b[m \x1b[1mChecking system requirements\x1b[m" in out
    assert "\x1b[1;32m✓\x1b[m done" in out
    assert "[1;34m" not in out.replace("\x1b[1;34m", "")

def test_no_colors(config, capsys):
    _ = config
    logger.step("Checking system requirements")
    logger.warning("careful")
    out = capsys.readouterr().out
    assert "\x1b" not in out
    assert "==> Checking system requirements" in out
    assert "warning: careful" in out

def test_log_file_has_no_colors(config, monkeypatch, tmp_path):
    _ = config
    use_config(monkeypatch, no_color=False)
    path = str(tmp_path / "run.log")
    with logger.RunLog(path, "pamacbox test", {"Container": "arch-pamac"}):
        provision.print_banner(G.config)
        logger.success("done")

    with open(path, encoding="utf-8") as f:
        content = f.read()
    assert "\x1b" not in content
    assert "[1;34m" not in content
    assert "] INFO: pamacbox v" in content
    assert "] SUCCESS: done\n" in content

def test_operation_status_is_overwritten(config, capsys):
    _ = config
    sample()
    out = capsys.readouterr().out
    assert out.startswith("sample thing\rsample thing\n")

def test_nested_message_starts_new_line(config, capsys):
    _ = config
    sample(nested_message=True)
    out = capsys.readouterr().out
    lines = out.split("\n")
    assert lines[0] == "sample thing"
    assert lines[1] == "[DRY RUN] Would execute: touch /tmp/thing"
    assert lines[2] == "sample thing"
    assert "\r" not in out
