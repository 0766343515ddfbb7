"""
CONFIDENTIAL STAKE TOKEN

Balances are stored as euint64 handles on the FHE coprocessor.
Transfers never branch on a secret:
  - transferred = select(amount <= balance, amount, 0)
  - sender_new  = sender_old - transferred
  - receiver_new = receiver_old + transferred

Public total_supply is maintained. It grows through operator mints and
through deposits, which wrap the native currency 1:1.
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

NULL_HANDLE = '0' * 64

def fhe():
    return importlib.import_module(metadata['fhe'])

def balance_or_zero(coprocessor, address: str):
    handle = balances[address]
    if handle is None:
        return coprocessor.trivial_encrypt(value=0, fhe_type='euint64')
    return handle

def store_balance(coprocessor, address: str, handle: str):
    balances[address] = handle
    coprocessor.allow(handle=handle, account=ctx.this)
    coprocessor.allow(handle=handle, account=address)

def credit(coprocessor, address: str, amount: int):
    current = balance_or_zero(coprocessor, address)
    added = coprocessor.trivial_encrypt(value=amount, fhe_type='euint64')
    store_balance(coprocessor, address, coprocessor.add(lhs=current, rhs=added))
    metadata['total_supply'] = (metadata['total_supply'] or 0) + amount

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# address -> euint64 handle
balances = Hash()

# contract metadata / config
metadata = Hash()

# Events
ConfidentialTransferEvent = LogEvent('ConfidentialTransfer', {
    'from': {'type': str, 'idx': True},
    'to': {'type': str, 'idx': True},
    'amount': {'type': str}
})

MintEvent = LogEvent('Mint', {
    'to': {'type': str, 'idx': True},
    'amount': {'type': int}
})

DepositEvent = LogEvent('Deposit', {
    'account': {'type': str, 'idx': True},
    'amount': {'type': int}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(fhe_contract: str, currency_contract: str = 'currency'):
    metadata['name'] = "Confidential Stake Token"
    metadata['symbol'] = "cSTK"
    metadata['operator'] = ctx.caller
    metadata['fhe'] = fhe_contract
    metadata['currency'] = currency_contract

    # Public supply
    metadata['total_supply'] = 0

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'name': metadata['name'],
        'symbol': metadata['symbol'],
        'operator': metadata['operator'],
        'fhe': metadata['fhe'],
        'currency': metadata['currency'],
        'total_supply': metadata['total_supply']
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'Only operator can set metadata'
    metadata[key] = value

@export
def confidential_balance_of(address: str):
    handle = balances[address]
    return handle if handle is not None else NULL_HANDLE

# -----------------------------------------------------------------------------
# Core: encrypted transfers
# -----------------------------------------------------------------------------

def move(coprocessor, sender: str, receiver: str, amount: str):
    sender_balance = balance_or_zero(coprocessor, sender)
    receiver_balance = balance_or_zero(coprocessor, receiver)

    # Insufficient funds move an encrypted zero instead of reverting
    enough = coprocessor.le(lhs=amount, rhs=sender_balance)
    zero = coprocessor.trivial_encrypt(value=0, fhe_type='euint64')
    transferred = coprocessor.select(condition=enough, if_true=amount, if_false=zero)

    store_balance(coprocessor, sender, coprocessor.sub(lhs=sender_balance, rhs=transferred))
    store_balance(coprocessor, receiver, coprocessor.add(lhs=receiver_balance, rhs=transferred))

    coprocessor.allow(handle=transferred, account=ctx.this)
    coprocessor.allow(handle=transferred, account=sender)
    coprocessor.allow(handle=transferred, account=receiver)

    ConfidentialTransferEvent({
        'from': sender,
        'to': receiver,
        'amount': transferred
    })
    return transferred

@export
def confidential_transfer(to: str, amount_handle: str, amount_proof: str):
    assert to != ctx.caller, 'Cannot transfer to self'

    coprocessor = fhe()
    amount = coprocessor.from_external(handle=amount_handle, proof=amount_proof, user=ctx.caller, fhe_type='euint64')
    transferred = move(coprocessor, ctx.caller, to, amount)

    coprocessor.clean_transient_storage()
    return transferred

@export
def confidential_transfer_and_call(to: str, amount_handle: str, amount_proof: str, data: dict):
    assert to != ctx.caller, 'Cannot transfer to self'

    sender = ctx.caller
    coprocessor = fhe()
    amount = coprocessor.from_external(handle=amount_handle, proof=amount_proof, user=sender, fhe_type='euint64')
    transferred = move(coprocessor, sender, to, amount)

    # Receiver may operate on the transferred amount for the rest of this call chain
    coprocessor.allow_transient(handle=transferred, account=to)

    receiver = importlib.import_module(to)
    accepted = receiver.on_confidential_transfer_received(sender=sender, amount=transferred, data=data)

    # Rejection hands the whole amount back, acceptance refunds zero
    zero = coprocessor.trivial_encrypt(value=0, fhe_type='euint64')
    refund = coprocessor.select(condition=accepted, if_true=zero, if_false=transferred)
    move(coprocessor, to, sender, refund)

    coprocessor.clean_transient_storage()
    return transferred

# -----------------------------------------------------------------------------
# Mint & deposit (public supply; encrypted balances)
# -----------------------------------------------------------------------------

@export
def mint(to: str, amount: int):
    assert ctx.caller == metadata['operator'], 'Only operator can mint'
    assert amount > 0, 'Amount must be positive'

    coprocessor = fhe()
    credit(coprocessor, to, amount)

    MintEvent({
        'to': to,
        'amount': amount
    })

    coprocessor.clean_transient_storage()

@export
def deposit(amount: int):
    assert amount > 0, 'Amount must be positive'

    # Caller must have approved this contract on the currency beforehand
    currency = importlib.import_module(metadata['currency'])
    currency.transfer_from(amount=amount, to=ctx.this, main_account=ctx.caller)

    coprocessor = fhe()
    credit(coprocessor, ctx.caller, amount)

    DepositEvent({
        'account': ctx.caller,
        'amount': amount
    })

    coprocessor.clean_transient_storage()
