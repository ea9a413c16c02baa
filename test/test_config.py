import pytest

from pamacbox.config import Config, ConfigError, parse_bool, validate_container_name
from pamacbox.main import build_parser

def args(*argv: str):
    return build_parser().parse_args(list(argv))

def test_defaults():
    config = Config.from_env({})
    assert config.container_name == "arch-pamac"
    assert config.image == "archlinux:latest"
    assert config.enable_multilib
    assert config.enable_build_cache
    assert not config.enable_gaming
    assert config.configure_mirrors
    assert config.mirror_countries == "US,Canada"
    assert not config.configure_locale
    assert config.locale == "en_US.UTF-8"
    assert config.install_boxbuddy
    assert not config.dry_run
    assert config.log_level == "normal"

def test_parse_bool():
    for value in ["true", "TRUE", "1", "yes", "On"]:
        assert parse_bool(value)
    for value in ["false", "False", "0", "no", "off"]:
        assert not parse_bool(value)
    with pytest.raises(ConfigError, match="ENABLE_GAMING_PACKAGES"):
        parse_bool("maybe", "ENABLE_GAMING_PACKAGES")

def test_container_names():
    validate_container_name("arch-pamac")
    validate_container_name("Box_2")
    validate_container_name("a" * 63)

    for name in ["", "-leading", "_leading", "has space", "semi;colon", "a/b", "a" * 64]:
        with pytest.raises(ConfigError):
            validate_container_name(name)

def test_environment():
    config = Config.from_env({
        "CONTAINER_NAME": "my-box",
        "ENABLE_MULTILIB": "false",
        "ENABLE_GAMING_PACKAGES": "true",
        "MIRROR_COUNTRIES": "Germany",
        "TARGET_LOCALE": "de_DE.UTF-8",
        "CONFIGURE_LOCALE": "1",
        "INSTALL_BOXBUDDY": "no",
        "DRY_RUN": "yes",
        "LOG_LEVEL": "verbose",
        "NO_COLOR": "",
    })
    assert config.container_name == "my-box"
    assert not config.enable_multilib
    assert config.enable_gaming
    assert config.mirror_countries == "Germany"
    assert config.locale == "de_DE.UTF-8"
    assert config.configure_locale
    assert not config.install_boxbuddy
    assert config.dry_run
    assert config.log_level == "verbose"
    assert config.no_color

def test_invalid_environment():
    with pytest.raises(ConfigError):
        Config.from_env({"DRY_RUN": "sometimes"})

def test_arguments_override_environment():
    environ = {"CONTAINER_NAME": "from-env", "ENABLE_MULTILIB": "true", "LOG_LEVEL": "verbose"}
    config = Config.from_args(args("--container-name", "from-cli", "--disable-multilib", "--quiet"), environ)
    assert config.container_name == "from-cli"
    assert not config.enable_multilib
    assert config.log_level == "quiet"

def test_missing_arguments_keep_environment():
    config = Config.from_args(args(), {"ENABLE_GAMING_PACKAGES": "true", "CONFIGURE_MIRRORS": "false"})
    assert config.enable_gaming
    assert not config.configure_mirrors

def test_argument_flags():
    config = Config.from_args(args("--enable-gaming", "--disable-build-cache", "--disable-mirrors",
                                   "--configure-locale", "--locale", "de_DE.UTF-8",
                                   "--disable-hooks", "--no-boxbuddy", "--force-rebuild",
                                   "--dry-run", "--no-color", "--yes", "--remove-boxbuddy"), {})
    assert config.enable_gaming
    assert not config.enable_build_cache
    assert not config.configure_mirrors
    assert config.configure_locale
    assert config.locale == "de_DE.UTF-8"
    assert not config.cleanup_hooks
    assert not config.install_boxbuddy
    assert config.force_rebuild
    assert config.dry_run
    assert config.no_color
    assert config.assume_yes
    assert config.remove_boxbuddy

def test_invalid_values():
    with pytest.raises(ConfigError):
        Config.from_args(args("--container-name", "bad name"), {})
    with pytest.raises(ConfigError):
        Config.from_args(args(), {"LOG_LEVEL": "chatty"})
    with pytest.raises(ConfigError):
        Config.from_args(args("--mirror-countries", ","), {})

def test_paths():
    config = Config(container_name="box", home="/home/deck")
    assert config.container_url == "distrobox://box"
    assert config.log_path == "/home/deck/distrobox-pamac-setup.log"
    assert config.applications_dir == "/home/deck/.local/share/applications"
    assert config.launcher_path == "/home/deck/.local/share/applications/pamac-manager-box.desktop"
    assert config.wrapper_path == "/home/deck/.local/bin/pamac-box"
    assert config.build_cache_dir == "/home/deck/.cache/yay-box"
    assert config.distrobox_config_dir == "/home/deck/.local/share/distrobox/containers/box"
    assert config.overlay(log_file="/tmp/x.log").log_path == "/tmp/x.log"

def test_overlay_ignores_none():
    config = Config(container_name="box", home="/home/deck")
    assert config.overlay(container_name=None, dry_run=True) == Config(container_name="box", home="/home/deck", dry_run=True)
