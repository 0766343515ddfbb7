import importlib.util
from pathlib import Path

import contracting
import pytest
from contracting.client import ContractingClient
from contracting.compilation import whitelists

PROJECT_ROOT = Path(__file__).resolve().parents[1]
FHE_PATH = PROJECT_ROOT / "con_fhe_coprocessor.py"
TOKEN_PATH = PROJECT_ROOT / "con_confidential_token.py"
MARKET_PATH = PROJECT_ROOT / "con_secure_outcome.py"
HELPER_PATH = PROJECT_ROOT / "client_helper.py"
SUBMISSION_PATH = (
    Path(contracting.__file__).resolve().parent / "contracts" / "submission.s.py"
)

FHE_NAME = "con_fhe_coprocessor"
TOKEN_NAME = "con_confidential_token"
MARKET_NAME = "con_secure_outcome"
INPUT_KEY = "test-input-key"


class Chain:
    """Current block height handed to every call as its environment."""

    def __init__(self):
        self.block_num = 1

    def mine(self):
        self.block_num += 1
        return self.block_num

    def environment(self):
        return {"block_num": self.block_num}


class OnChain:
    """Contract proxy that runs each call inside the chain's current block."""

    def __init__(self, contract, chain):
        self._contract = contract
        self._chain = chain

    def __getattr__(self, name):
        attr = getattr(self._contract, name)
        if not callable(attr):
            return attr

        def call(*args, **kwargs):
            kwargs.setdefault("environment", self._chain.environment())
            return attr(*args, **kwargs)

        return call


@pytest.fixture(scope="session", autouse=True)
def enable_stdlib_bridges():
    whitelists.ALLOWED_BUILTINS.update({"hashlib", "importlib"})


@pytest.fixture(scope="session")
def helper_module():
    spec = importlib.util.spec_from_file_location("client_helper_tests", HELPER_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="session")
def input_key():
    return INPUT_KEY


@pytest.fixture
def chain():
    return Chain()


@pytest.fixture
def client():
    client = ContractingClient(signer="operator", metering=False)
    client.flush()
    client.set_submission_contract(str(SUBMISSION_PATH))
    return client


@pytest.fixture
def deploy(client, chain):
    def submit(path_or_code, name, **constructor_args):
        code = path_or_code.read_text() if isinstance(path_or_code, Path) else path_or_code
        client.submit(code, name=name, owner=None, constructor_args=constructor_args)
        return OnChain(client.get_contract(name), chain)

    return submit


@pytest.fixture
def fhe(deploy):
    return deploy(FHE_PATH, FHE_NAME, input_key=INPUT_KEY)


@pytest.fixture
def token(deploy, fhe):
    return deploy(TOKEN_PATH, TOKEN_NAME, fhe_contract=FHE_NAME)


@pytest.fixture
def market(deploy, fhe, token):
    return deploy(MARKET_PATH, MARKET_NAME, token_contract=TOKEN_NAME, fhe_contract=FHE_NAME)
