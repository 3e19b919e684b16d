import pytest

from helpers.datasource import InMemoryDataSource
from helpers.hooks import RecordingHooks
from helpers.progress import make_store
from helpers.utils import data_path, load_yaml

from survey_fields.loader import ConfigLoader


# Package/version choices, a referral param and a unique issue title
RAW_CONFIG = [
    {
        "config_type": "param",
        "table_name": "sources",
        "config_col": "source",
        "display_col": "display_name",
    },
    {
        "config_type": "choice",
        "table_name": "packages",
        "config_col": "package",
    },
    {
        "config_type": "choice",
        "table_name": "versions",
        "config_col": "version",
        "parent_table_name": "packages",
        "parent_id_col": "package_id",
    },
    {
        "config_type": "unique",
        "table_name": "issues",
        "config_col": "issue_title",
        "result": "stop",
        "result_field": "issue_title_result",
    },
]


@pytest.fixture
def raw_config():
    return [dict(entry) for entry in RAW_CONFIG]


@pytest.fixture
def configs(raw_config):
    return ConfigLoader().load(raw_config)


@pytest.fixture
def datasource():
    return InMemoryDataSource()


@pytest.fixture
def hooks():
    return RecordingHooks()


@pytest.fixture
def store():
    return make_store()


@pytest.fixture
def yml():
    return load_yaml


@pytest.fixture(scope="session")
def example_config_path():
    return data_path("dynamic_config.yaml")


@pytest.fixture(scope="session")
def example_survey_path():
    return data_path("survey.json")
