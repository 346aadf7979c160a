# Payout arithmetic for a single (validator, era) pair, done the same way the runtime does it
# so the numbers match `payout_stakers` to the planck. Everything is `Perbill` fixed point on
# plain ints. No floats anywhere.

PERBILL = 1_000_000_000

# `Perbill::from_rational`. Rounds down and saturates at one (also when `q` is zero).
def perbill_from_rational(p: int, q: int) -> int:
	if q == 0 or p >= q:
		return PERBILL
	return p * PERBILL // q

# `Perbill * Balance`. Rounds to the nearest planck, ties go down.
def perbill_mul(parts: int, n: int) -> int:
	q, r = divmod(n * parts, PERBILL)
	if r * 2 > PERBILL:
		q += 1
	return q

class CalcPayout:
	def __init__(self, total_reward_points: int, era_payout: int):
		self.total_reward_points = int(total_reward_points)
		self.era_payout = int(era_payout)

	# Mirrors `CalcPayout.from_params` from `@substrate/calc`. Balances may come in as strings.
	@classmethod
	def from_params(cls, total_reward_points, era_payout):
		return cls(total_reward_points, era_payout)

	# Payout owed to a staker behind one validator for this era.
	#
	# `validator_commission` is in Perbill parts. If `is_validator` is set, the staker is the
	# validator itself and also gets the whole commission.
	def calc_payout(
		self,
		validator_reward_points,
		validator_commission,
		nominator_exposure,
		total_exposure,
		is_validator: bool
	) -> int:
		validator_total_reward_part = perbill_from_rational(
			int(validator_reward_points),
			self.total_reward_points
		)

		# What validator + nominators are entitled to.
		validator_total_payout = perbill_mul(validator_total_reward_part, self.era_payout)

		validator_commission_payout = perbill_mul(
			min(int(validator_commission), PERBILL),
			validator_total_payout
		)
		validator_leftover_payout = validator_total_payout - validator_commission_payout

		own_exposure_part = perbill_from_rational(int(nominator_exposure), int(total_exposure))
		own_staking_payout = perbill_mul(own_exposure_part, validator_leftover_payout)

		if is_validator:
			return own_staking_payout + validator_commission_payout
		return own_staking_payout
