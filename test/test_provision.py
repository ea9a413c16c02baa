import os
import subprocess

import pytest

from conftest import PAMAC_DESKTOP, use_config
from pamacbox import provision
from pamacbox.operations import desktop
from pamacbox.operations.api import OperationError
from pamacbox.provision import BOXBUDDY_ID, CLEANUP_HOOK, CLEANUP_SCRIPT, GAMING_PACKAGES, SUDOERS_FILE

def test_provision(config, fake, capsys):
    state = provision.run()
    assert state.created_container
    assert not state.issues

    b = fake.containers[config.container_name]
    assert b.image == "archlinux:latest"
    assert b.volumes == [f"{config.build_cache_dir}:{config.home}/.cache/yay"]
    assert os.path.isdir(config.build_cache_dir)

    assert "deck" in b.groups["wheel"]
    assert b"NOPASSWD" in b.files[SUDOERS_FILE]
    assert b.modes[SUDOERS_FILE] == "440"
    assert "/etc/pacman.d/gnupg/trustdb.gpg" in b.files
    assert b"\n[multilib]\nInclude = /etc/pacman.d/mirrorlist\n" in b.files["/etc/pacman.conf"]
    assert b"reflector --country US,Canada" in b.files["/etc/pacman.d/mirrorlist"]
    assert {"git", "base-devel", "yay-bin", "pamac-aur"} <= b.packages
    assert not set(GAMING_PACKAGES) & b.packages

    pamac_conf = b.files["/etc/pamac.conf"].decode()
    for option in ["EnableAUR", "CheckAURUpdates", "CheckAURVCSUpdates"]:
        assert f"\n{option}\n" in pamac_conf
    assert "#RemoveUnrequiredDeps" in pamac_conf

    assert b.modes[CLEANUP_SCRIPT] == "755"
    assert f'-name "{config.container_name}-*.desktop"'.encode() in b.files[CLEANUP_SCRIPT]
    assert f"Exec = {CLEANUP_SCRIPT}".encode() in b.files[CLEANUP_HOOK]

    assert os.listdir(config.applications_dir) == [f"{config.container_name}-{PAMAC_DESKTOP}.desktop"]
    assert not os.path.exists(config.launcher_path)
    assert fake.box_commands("distrobox-export", "--app", "pamac-manager", "--extra-flags", "--no-sandbox")
    with open(config.wrapper_path, encoding="utf-8") as f:
        assert f"distrobox enter {config.container_name} -- pamac" in f.read()
    assert os.access(config.wrapper_path, os.X_OK)

    assert fake.flatpak_remotes == {"flathub"}
    assert fake.flatpaks == {BOXBUDDY_ID}

    out = capsys.readouterr().out
    assert "Pamac setup completed successfully!" in out
    assert "Standard export failed" not in out
    assert f"Command line: pamac-{config.container_name}" in out

def test_provision_twice(config, fake, capsys):
    provision.run()
    capsys.readouterr()
    n_commands = len(fake.commands)

    state = provision.run()
    assert not state.created_container
    assert not state.issues
    assert f"Using existing container: {config.container_name}" in capsys.readouterr().out

    second = fake.commands[n_commands:]
    assert len(fake.executed("distrobox", "create")) == 1
    assert not [c for c in second if "makepkg" in c or "groupadd" in c or "usermod" in c or "reflector" in c]
    assert not [c for c in second if c[-1] == "pamac-aur" and "-S" in c]
    assert not fake.executed("flatpak", "install")[1:]
    assert len(fake.box_commands("distrobox-export")) == 1
    assert not os.path.exists(config.launcher_path)

def test_dry_run(config, fake, monkeypatch, capsys):
    use_config(monkeypatch, dry_run=True)
    state = provision.run()
    assert not state.issues

    probes = (["distrobox", "list"], ["podman", "info"], ["flatpak", "remotes"], ["flatpak", "info"])
    assert fake.commands
    assert all(c[:2] in probes for c in fake.commands)
    assert not fake.containers
    assert not os.path.exists(config.wrapper_path)
    assert not os.path.exists(config.build_cache_dir)

    out = capsys.readouterr().out
    assert "DRY RUN MODE" in out
    assert "[DRY RUN] Would execute: distrobox create --name arch-pamac --image archlinux:latest --yes" in out
    assert "sudo --user root -- pacman --noconfirm -Syu" in out
    assert f"Would execute: write {config.wrapper_path}" in out
    assert "Dry run completed, no changes were made" in out

def test_dry_run_existing_container(config, fake, monkeypatch):
    use_config(monkeypatch, dry_run=True)
    b = fake.add_container(config.container_name)
    files = dict(b.files)
    provision.run()

    assert b.files == files
    assert b.packages == {"base", "sudo"}
    assert not fake.executed("distrobox", "rm")

def test_rollback_created_container(config, fake, capsys):
    fake.failing.add("makepkg")
    with pytest.raises(subprocess.CalledProcessError):
        provision.run()

    assert config.container_name not in fake.containers
    assert fake.executed("distrobox", "rm", "--force", config.container_name)
    assert "removing container" in capsys.readouterr().out

def test_no_rollback_existing_container(config, fake):
    fake.add_container(config.container_name)
    fake.failing.add("makepkg")
    with pytest.raises(subprocess.CalledProcessError):
        provision.run()

    assert config.container_name in fake.containers
    assert not fake.executed("distrobox", "rm")

def test_missing_distrobox(config, fake):
    _ = config
    fake.host_commands.discard("distrobox")
    with pytest.raises(OperationError, match="distrobox is not installed"):
        provision.run()
    assert not fake.executed("distrobox")

def test_export_fallback(config, fake, capsys):
    fake.failing.add("distrobox-export")
    state = provision.run()
    assert not state.issues
    assert not desktop.find_exports(config.applications_dir, config.container_name, "pamac-manager")
    with open(config.launcher_path, encoding="utf-8") as f:
        entry = f.read()
    assert f"Exec=distrobox enter {config.container_name} -- pamac-manager --no-sandbox" in entry
    assert "creating manual launcher" in capsys.readouterr().out

def test_gaming_packages(config, fake, monkeypatch, capsys):
    use_config(monkeypatch, enable_gaming=True)
    b = fake.add_container(config.container_name)
    b.unavailable.add("lutris")

    state = provision.run()
    assert state.gaming_failures == ["lutris"]
    assert set(GAMING_PACKAGES) - {"lutris"} <= b.packages
    assert "Failed to install some packages: lutris" in capsys.readouterr().out

def test_force_rebuild(config, fake, monkeypatch):
    use_config(monkeypatch, force_rebuild=True)
    old = fake.add_container(config.container_name)
    old.packages.add("leftover")

    state = provision.run()
    assert state.created_container
    assert fake.executed("distrobox", "rm", "--force", config.container_name)
    assert "leftover" not in fake.containers[config.container_name].packages

def test_optional_steps_disabled(config, fake, monkeypatch):
    use_config(monkeypatch, enable_multilib=False, configure_mirrors=False, cleanup_hooks=False,
               install_boxbuddy=False, enable_build_cache=False)
    provision.run()

    b = fake.containers[config.container_name]
    assert b.volumes == []
    assert b"#[multilib]" in b.files["/etc/pacman.conf"]
    assert not fake.box_commands("reflector")
    assert CLEANUP_SCRIPT not in b.files
    assert not fake.executed("flatpak")

def test_locale(config, fake, monkeypatch):
    use_config(monkeypatch, configure_locale=True, locale="de_DE.UTF-8")
    provision.run()
    assert fake.containers[config.container_name].files["/etc/locale.conf"] == b"LANG=de_DE.UTF-8\n"

def test_without_flatpak(config, fake, capsys):
    _ = config
    fake.host_commands.discard("flatpak")
    state = provision.run()
    assert not state.flatpak_available
    assert not fake.executed("flatpak")
    assert "BoxBuddy installation will be skipped" in capsys.readouterr().out

def test_podman_machine(config, fake):
    _ = config
    fake.podman_ok = False
    with pytest.raises(OperationError, match="Podman is not working"):
        provision.run()
    assert fake.executed("podman", "machine", "start")
    assert not fake.containers

def test_export_replaces_manual_launcher(config, fake):
    _ = fake
    os.makedirs(config.applications_dir)
    with open(config.launcher_path, "w", encoding="utf-8") as f:
        f.write("[Desktop Entry]\nExec=distrobox enter arch-pamac -- pamac-manager --no-sandbox\n")

    state = provision.run()
    assert not state.issues
    assert not os.path.exists(config.launcher_path)
    assert desktop.find_exports(config.applications_dir, config.container_name, "pamac-manager")

def test_interrupt_removes_created_container(config, fake, monkeypatch, capsys):
    spawn = fake.spawn
    def interrupted_spawn(argv, input=None): # pylint: disable=redefined-builtin
        if "makepkg" in argv:
            raise KeyboardInterrupt()
        return spawn(argv, input)
    monkeypatch.setattr(fake, "spawn", interrupted_spawn)

    with pytest.raises(KeyboardInterrupt):
        provision.run()
    assert config.container_name not in fake.containers
    assert fake.executed("distrobox", "rm", "--force", config.container_name)
    assert "removing container" in capsys.readouterr().out
