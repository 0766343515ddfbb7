"""
SECURE OUTCOME - CONFIDENTIAL PREDICTION MARKETS

Bettors commit an encrypted choice (euint8) and an encrypted stake (euint64)
through the confidential stake token. Per-option totals are folded
homomorphically and stay readable by this contract only, until the creator
closes the market and every total becomes publicly decryptable.

Every fold touches all option slots:
  totals[i] = select(choice == i, totals[i] + amount, totals[i])
so the execution shape never depends on the secret choice.

A choice outside [0, option_count) matches no slot and its stake is folded
into no total. The stake still moves to this contract.
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

MIN_OPTIONS = 2
MAX_OPTIONS = 4
TOTAL_SLOTS = 4

OPEN = 'open'
CLOSED = 'closed'

NULL_HANDLE = '0' * 64

def fhe():
    return importlib.import_module(metadata['fhe'])

def load_market(market_id: int):
    market = markets[market_id]
    assert market is not None, 'MarketNotFound'
    return market

def load_open_market(market_id: int):
    market = load_market(market_id)
    assert market['state'] == OPEN, 'MarketClosed'
    return market

# -----------------------------------------------------------------------------
# Access governor (thin layer over the coprocessor ACL)
# -----------------------------------------------------------------------------

def grant(coprocessor, handle: str, principal: str):
    coprocessor.allow(handle=handle, account=principal)

def grant_transient(coprocessor, handle: str, principal: str):
    coprocessor.allow_transient(handle=handle, account=principal)

def make_public(coprocessor, handle: str):
    coprocessor.make_publicly_decryptable(handle=handle)

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# market_id -> {'title', 'options', 'option_count', 'creator', 'state', 'totals'}
markets = Hash()
market_count = Variable()

# (market_id, account) -> {'choice': handle, 'amount': handle}
bets = Hash()

# config: operator, token (registered transfer mechanism), fhe
metadata = Hash()

# Events
MarketCreatedEvent = LogEvent('MarketCreated', {
    'market_id': {'type': int, 'idx': True},
    'creator': {'type': str, 'idx': True},
    'title': {'type': str},
    'option_count': {'type': int}
})

BetPlacedEvent = LogEvent('BetPlaced', {
    'market_id': {'type': int, 'idx': True},
    'account': {'type': str, 'idx': True}
})

MarketClosedEvent = LogEvent('MarketClosed', {
    'market_id': {'type': int, 'idx': True},
    'closed_by': {'type': str, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(token_contract: str, fhe_contract: str):
    metadata['operator'] = ctx.caller
    metadata['token'] = token_contract
    metadata['fhe'] = fhe_contract
    market_count.set(0)

# -----------------------------------------------------------------------------
# Market registry
# -----------------------------------------------------------------------------

@export
def create_market(title: str, options: list):
    assert isinstance(options, list), 'InvalidOptions'
    for option in options:
        assert isinstance(option, str), 'InvalidOptions'
    assert MIN_OPTIONS <= len(options) <= MAX_OPTIONS, 'InvalidOptionCount'

    coprocessor = fhe()
    totals = []
    for i in range(TOTAL_SLOTS):
        total = coprocessor.trivial_encrypt(value=0, fhe_type='euint64')
        grant(coprocessor, total, ctx.this)
        totals.append(total)

    market_id = market_count.get()
    market_count.set(market_id + 1)

    markets[market_id] = {
        'title': title,
        'options': options,
        'option_count': len(options),
        'creator': ctx.caller,
        'state': OPEN,
        'totals': totals
    }

    MarketCreatedEvent({
        'market_id': market_id,
        'creator': ctx.caller,
        'title': title,
        'option_count': len(options)
    })

    coprocessor.clean_transient_storage()
    return market_id

@export
def get_market_count():
    return market_count.get()

@export
def get_market_info(market_id: int):
    market = load_market(market_id)
    return {
        'title': market['title'],
        'state': market['state'],
        'option_count': market['option_count'],
        'creator': market['creator']
    }

@export
def get_market_options(market_id: int):
    return load_market(market_id)['options']

@export
def get_encrypted_totals(market_id: int):
    # Raw handles regardless of state; check is_publicly_decryptable before revealing
    market = load_market(market_id)
    return {
        'totals': market['totals'],
        'option_count': market['option_count']
    }

def fold_stake(coprocessor, market_id: int, choice: str, amount: str):
    market = load_open_market(market_id)
    totals = market['totals']

    for i in range(market['option_count']):
        matches = coprocessor.eq_scalar(lhs=choice, scalar=i)
        increased = coprocessor.add(lhs=totals[i], rhs=amount)
        totals[i] = coprocessor.select(condition=matches, if_true=increased, if_false=totals[i])
        grant(coprocessor, totals[i], ctx.this)

    market['totals'] = totals
    markets[market_id] = market

# -----------------------------------------------------------------------------
# Bet ledger
# -----------------------------------------------------------------------------

def record_bet(coprocessor, market_id: int, account: str, choice: str, amount: str):
    load_open_market(market_id)
    assert bets[market_id, account] is None, 'AlreadyBet'

    bets[market_id, account] = {
        'choice': choice,
        'amount': amount
    }

    grant(coprocessor, choice, ctx.this)
    grant(coprocessor, amount, ctx.this)
    grant(coprocessor, choice, account)
    grant(coprocessor, amount, account)

@export
def get_bet(market_id: int, account: str):
    load_market(market_id)
    bet = bets[market_id, account]
    if bet is None:
        return {
            'exists': False,
            'choice': NULL_HANDLE,
            'amount': NULL_HANDLE
        }
    return {
        'exists': True,
        'choice': bet['choice'],
        'amount': bet['amount']
    }

# -----------------------------------------------------------------------------
# Stake intake (called by the confidential stake token)
# -----------------------------------------------------------------------------

def decode_instructions(data: dict):
    assert isinstance(data, dict), 'InvalidInstructions'
    market_id = data.get('market_id')
    choice = data.get('choice')
    proof = data.get('proof')
    assert isinstance(market_id, int) and not isinstance(market_id, bool), 'InvalidInstructions'
    assert isinstance(choice, str) and isinstance(proof, str), 'InvalidInstructions'
    return market_id, choice, proof

@export
def on_confidential_transfer_received(sender: str, amount: str, data: dict):
    assert ctx.caller == metadata['token'], 'UnauthorizedCaller'

    market_id, choice_handle, choice_proof = decode_instructions(data)

    coprocessor = fhe()
    choice = coprocessor.from_external(handle=choice_handle, proof=choice_proof, user=sender, fhe_type='euint8')

    # Duplicates are rejected before any homomorphic work on the totals
    record_bet(coprocessor, market_id, sender, choice, amount)
    fold_stake(coprocessor, market_id, choice, amount)

    BetPlacedEvent({
        'market_id': market_id,
        'account': sender
    })

    accepted = coprocessor.trivial_encrypt(value=1, fhe_type='ebool')
    grant_transient(coprocessor, accepted, ctx.caller)
    return accepted

# -----------------------------------------------------------------------------
# Closure
# -----------------------------------------------------------------------------

@export
def close_market(market_id: int):
    market = load_market(market_id)
    assert ctx.caller == market['creator'], 'NotCreator'
    assert market['state'] == OPEN, 'AlreadyClosed'

    market['state'] = CLOSED
    markets[market_id] = market

    coprocessor = fhe()
    for i in range(market['option_count']):
        make_public(coprocessor, market['totals'][i])

    MarketClosedEvent({
        'market_id': market_id,
        'closed_by': ctx.caller
    })

    coprocessor.clean_transient_storage()
