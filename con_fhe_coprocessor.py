"""
MOCK FHE COPROCESSOR

Ciphertexts are referenced by opaque handles. The cleartext behind a handle
lives in coprocessor storage and is released only through the ACL:
  - persistent grants   (allow)
  - transient grants    (allow_transient, honoured only inside the transaction
                         that made them: same signer, same block)
  - public decryption   (make_publicly_decryptable, irreversible)

Supported types: ebool, euint8, euint64. Arithmetic wraps modulo 2**bits.
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

TYPE_BITS = {'ebool': 1, 'euint8': 8, 'euint64': 64}

def domain_hash(tag: str, *parts):
    s = "|".join(str(x) for x in parts)
    return hashlib.sha3("XFHE:v1:" + tag + "|" + s)

def wrap(value: int, fhe_type: str):
    return value % (2 ** TYPE_BITS[fhe_type])

def keystream(nonce: str):
    return int(domain_hash('stream', metadata['input_key'], nonce)[:16], 16)

def tx_marker():
    return ctx.signer + '|' + str(block_num)

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# handle -> int
cleartexts = Hash()
# handle -> 'ebool' | 'euint8' | 'euint64'
handle_types = Hash()

# (handle, account) -> bool
acl = Hash(default_value=False)
# (handle, account) -> tx marker the grant belongs to
transient_acl = Hash(default_value='')
# (tx marker, granter) -> [[handle, account], ...]
transient_entries = Hash()

# handle -> bool
public_handles = Hash(default_value=False)

metadata = Hash()
handle_count = Variable()

MadePublicEvent = LogEvent('MadePublic', {
    'handle': {'type': str, 'idx': True},
    'by': {'type': str, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(input_key: str):
    metadata['input_key'] = input_key
    metadata['operator'] = ctx.caller
    handle_count.set(0)

# -----------------------------------------------------------------------------
# ACL internals
# -----------------------------------------------------------------------------

def is_granted(handle: str, account: str):
    return acl[handle, account] or transient_acl[handle, account] == tx_marker()

def grant_transient(handle: str, account: str):
    marker = tx_marker()
    if transient_acl[handle, account] == marker:
        return
    transient_acl[handle, account] = marker
    entries = transient_entries[marker, ctx.caller] or []
    entries.append([handle, account])
    transient_entries[marker, ctx.caller] = entries

def operand(handle: str):
    fhe_type = handle_types[handle]
    assert fhe_type is not None, 'Unknown handle'
    assert is_granted(handle, ctx.caller), 'Sender not allowed on handle'
    return cleartexts[handle], fhe_type

def new_handle(op: str, fhe_type: str, value: int):
    n = handle_count.get()
    handle_count.set(n + 1)
    handle = domain_hash('op', op, fhe_type, n)
    cleartexts[handle] = wrap(value, fhe_type)
    handle_types[handle] = fhe_type
    # The requesting contract may keep computing on the result within this call chain
    grant_transient(handle, ctx.caller)
    return handle

# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------

@export
def trivial_encrypt(value: int, fhe_type: str):
    assert fhe_type in TYPE_BITS, 'Unsupported type'
    assert value >= 0, 'Negative plaintext'
    return new_handle('trivial', fhe_type, value)

@export
def from_external(handle: str, proof: str, user: str, fhe_type: str):
    assert fhe_type in TYPE_BITS, 'Unsupported type'

    parts = proof.split(':')
    assert len(parts) == 3, 'InvalidProof'
    nonce = parts[0]
    ciphertext = parts[1]
    signature = parts[2]

    # The handle commits to the ciphertext, the signature binds it to (ctx.caller, user)
    assert handle == domain_hash('input', fhe_type, nonce, ciphertext), 'InvalidProof'
    expected = domain_hash('proof', metadata['input_key'], handle, ctx.caller, user)
    assert signature == expected, 'InvalidProof'

    if handle_types[handle] is None:
        cleartexts[handle] = wrap(int(ciphertext, 16) ^ keystream(nonce), fhe_type)
        handle_types[handle] = fhe_type

    grant_transient(handle, ctx.caller)
    return handle

# -----------------------------------------------------------------------------
# Homomorphic operations
# -----------------------------------------------------------------------------

@export
def add(lhs: str, rhs: str):
    a, a_type = operand(lhs)
    b, b_type = operand(rhs)
    assert a_type == b_type, 'Type mismatch'
    return new_handle('add', a_type, a + b)

@export
def sub(lhs: str, rhs: str):
    a, a_type = operand(lhs)
    b, b_type = operand(rhs)
    assert a_type == b_type, 'Type mismatch'
    return new_handle('sub', a_type, a - b)

@export
def eq(lhs: str, rhs: str):
    a, a_type = operand(lhs)
    b, b_type = operand(rhs)
    assert a_type == b_type, 'Type mismatch'
    return new_handle('eq', 'ebool', 1 if a == b else 0)

@export
def eq_scalar(lhs: str, scalar: int):
    a, a_type = operand(lhs)
    return new_handle('eq', 'ebool', 1 if a == scalar else 0)

@export
def le(lhs: str, rhs: str):
    a, a_type = operand(lhs)
    b, b_type = operand(rhs)
    assert a_type == b_type, 'Type mismatch'
    return new_handle('le', 'ebool', 1 if a <= b else 0)

@export
def select(condition: str, if_true: str, if_false: str):
    c, c_type = operand(condition)
    assert c_type == 'ebool', 'Condition must be ebool'
    t, t_type = operand(if_true)
    f, f_type = operand(if_false)
    assert t_type == f_type, 'Type mismatch'
    return new_handle('select', t_type, t if c != 0 else f)

# -----------------------------------------------------------------------------
# ACL
# -----------------------------------------------------------------------------

@export
def allow(handle: str, account: str):
    operand(handle)
    acl[handle, account] = True

@export
def allow_transient(handle: str, account: str):
    operand(handle)
    grant_transient(handle, account)

@export
def make_publicly_decryptable(handle: str):
    operand(handle)
    if public_handles[handle]:
        return
    public_handles[handle] = True
    MadePublicEvent({'handle': handle, 'by': ctx.caller})

@export
def clean_transient_storage():
    # Only the caller's own grants from this transaction
    marker = tx_marker()
    for entry in transient_entries[marker, ctx.caller] or []:
        if transient_acl[entry[0], entry[1]] == marker:
            transient_acl[entry[0], entry[1]] = ''
    transient_entries[marker, ctx.caller] = []

@export
def is_allowed(handle: str, account: str):
    return is_granted(handle, account)

@export
def is_publicly_decryptable(handle: str):
    return public_handles[handle]

# -----------------------------------------------------------------------------
# Decryption
# -----------------------------------------------------------------------------

@export
def user_decrypt(handle: str):
    assert handle_types[handle] is not None, 'Unknown handle'
    assert public_handles[handle] or acl[handle, ctx.caller], 'Not allowed to decrypt'
    return cleartexts[handle]

@export
def public_decrypt(handle: str):
    assert public_handles[handle], 'Handle is not publicly decryptable'
    return cleartexts[handle]
