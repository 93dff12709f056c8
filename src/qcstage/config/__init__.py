from .loader import CONFIG_FILENAME, Config, dump_config, load_config

__all__ = ["CONFIG_FILENAME", "Config", "dump_config", "load_config"]
