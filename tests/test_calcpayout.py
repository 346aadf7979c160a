from calcpayout import PERBILL, CalcPayout, perbill_from_rational, perbill_mul

def test_from_rational_rounds_down():
	assert perbill_from_rational(1, 3) == 333_333_333
	assert perbill_from_rational(2, 3) == 666_666_666
	assert perbill_from_rational(200, 1000) == 200_000_000

def test_from_rational_saturates():
	assert perbill_from_rational(5, 0) == PERBILL
	assert perbill_from_rational(7, 3) == PERBILL
	assert perbill_from_rational(0, 3) == 0

def test_mul_rounds_to_nearest_ties_down():
	assert perbill_mul(400_000_000, 3) == 1
	assert perbill_mul(500_000_000, 3) == 1
	assert perbill_mul(600_000_000, 3) == 2
	assert perbill_mul(PERBILL, 12345) == 12345

def test_nominator_payout():
	calc = CalcPayout.from_params(1000, '1000000')
	payout = calc.calc_payout(500, 100_000_000, '200', '1000', False)
	assert payout == 90_000

def test_validator_gets_commission_and_own_share():
	calc = CalcPayout.from_params(1000, 1_000_000)
	# 500_000 for the validator, 50_000 commission, 300/1000 of the remaining 450_000
	assert calc.calc_payout(500, 100_000_000, 300, 1000, True) == 185_000

def test_full_commission_leaves_nominators_nothing():
	calc = CalcPayout.from_params(10, 1_000_000)
	assert calc.calc_payout(10, PERBILL, 500, 1000, False) == 0
	assert calc.calc_payout(10, PERBILL, 500, 1000, True) == 1_000_000

def test_large_balance_matches_perbill_truncation():
	# A float would give 2551440333333333.33 here.
	calc = CalcPayout.from_params(3, 7_654_321_000_000_000)
	assert calc.calc_payout(1, 0, 1, 1, False) == 2_551_440_330_781_893

def test_small_balance_rounding():
	calc = CalcPayout.from_params(3, 10)
	# 3 for the validator, commission of 1.5 rounds down to 1, leaving 2 to split in half
	assert calc.calc_payout(1, 500_000_000, 1, 2, False) == 1
	assert calc.calc_payout(1, 500_000_000, 1, 2, True) == 2
