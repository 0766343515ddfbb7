import hashlib
import logging
import secrets

log = logging.getLogger(__name__)

# ---- Chain-constant parameters & helpers (mirror contracts) ----

TYPE_BITS = {'ebool': 1, 'euint8': 8, 'euint64': 64}

MIN_OPTIONS = 2
MAX_OPTIONS = 4

NULL_HANDLE = '0' * 64

def sha3_hex(s: str) -> str:
    # Matches Xian env semantics: hex strings are hashed as bytes, anything else as utf-8
    try:
        data = bytes.fromhex(s)
    except ValueError:
        data = s.encode()
    return hashlib.sha3_256(data).hexdigest()

def domain_hash(tag: str, *parts) -> str:
    s = "|".join(str(x) for x in parts)
    return sha3_hex("XFHE:v1:" + tag + "|" + s)

def keystream(input_key: str, nonce: str) -> int:
    return int(domain_hash('stream', input_key, nonce)[:16], 16)

def random_nonce() -> str:
    return secrets.token_hex(16)

# ---- Encrypted inputs --------------------------------------------------------

def create_encrypted_input(input_key: str,
                           contract: str,
                           user: str,
                           value: int,
                           fhe_type: str = 'euint64',
                           nonce: str = None):
    """
    Returns {'handle', 'proof'} for a coprocessor from_external() call.
    The proof is only valid when imported by `contract` on behalf of `user`.
    """
    if fhe_type not in TYPE_BITS:
        raise ValueError(f"Unsupported type: {fhe_type}")
    value = int(value)
    if value < 0 or value >= 2 ** TYPE_BITS[fhe_type]:
        raise ValueError(f"Value {value} does not fit in {fhe_type}")

    if nonce is None:
        nonce = random_nonce()

    ciphertext = format(value ^ keystream(input_key, nonce), 'x')
    handle = domain_hash('input', fhe_type, nonce, ciphertext)
    signature = domain_hash('proof', input_key, handle, contract, user)

    log.debug("encrypted %s input for %s (user=%s): %s", fhe_type, contract, user, handle)
    return {
        'handle': handle,
        'proof': f"{nonce}:{ciphertext}:{signature}"
    }

class EncryptedInput:
    """
    Collects plaintexts bound to one (contract, user) pair, then encrypts them
    all at once:

        inputs = EncryptedInput(key, 'con_secure_outcome', 'alice').add8(1).encrypt()
    """
    def __init__(self, input_key: str, contract: str, user: str):
        self.input_key = input_key
        self.contract = contract
        self.user = user
        self.values = []

    def add_bool(self, value: bool):
        self.values.append(('ebool', 1 if value else 0))
        return self

    def add8(self, value: int):
        self.values.append(('euint8', value))
        return self

    def add64(self, value: int):
        self.values.append(('euint64', value))
        return self

    def encrypt(self):
        inputs = [
            create_encrypted_input(self.input_key, self.contract, self.user, value, fhe_type)
            for fhe_type, value in self.values
        ]
        return {
            'handles': [i['handle'] for i in inputs],
            'proofs': [i['proof'] for i in inputs],
        }

# ---- High-level builders -----------------------------------------------------

def parse_options(raw: str):
    """
    "Yes, No ,," -> ['Yes', 'No']. Raises ValueError unless 2-4 options remain.
    """
    options = [part.strip() for part in raw.split(',')]
    options = [option for option in options if option]
    if not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
        raise ValueError(f"Expected {MIN_OPTIONS}-{MAX_OPTIONS} options, got {len(options)}")
    return options

def build_bet_instructions(market_id: int, choice_input: dict):
    return {
        'market_id': int(market_id),
        'choice': choice_input['handle'],
        'proof': choice_input['proof'],
    }

def build_bet(input_key: str,
              market_contract: str,
              token_contract: str,
              bettor: str,
              market_id: int,
              option: int,
              amount: int,
              choice_nonce: str = None,
              amount_nonce: str = None):
    """
    Returns kwargs for token.confidential_transfer_and_call():
        (to, amount_handle, amount_proof, data)
    The choice is bound to the market contract, the stake to the token.
    """
    if amount <= 0:
        raise ValueError("Stake must be greater than zero")

    choice_input = create_encrypted_input(
        input_key, market_contract, bettor, option, 'euint8', nonce=choice_nonce
    )
    amount_input = create_encrypted_input(
        input_key, token_contract, bettor, amount, 'euint64', nonce=amount_nonce
    )

    return {
        'to': market_contract,
        'amount_handle': amount_input['handle'],
        'amount_proof': amount_input['proof'],
        'data': build_bet_instructions(market_id, choice_input),
    }

def reveal_totals(totals_info: dict, decrypt):
    """
    Decrypts the live option totals from get_encrypted_totals().
    `decrypt` maps a handle to its cleartext, e.g. a public_decrypt call.
    """
    handles = totals_info['totals'][:totals_info['option_count']]
    return [decrypt(handle) for handle in handles]

def reveal_bet(bet_info: dict, decrypt):
    """
    Decrypts a bettor's own bet from get_bet(), or returns None when there is none.
    `decrypt` maps a handle to its cleartext, e.g. the bettor's user_decrypt call.
    """
    if not bet_info['exists']:
        return None
    return {
        'choice': decrypt(bet_info['choice']),
        'amount': decrypt(bet_info['amount']),
    }
