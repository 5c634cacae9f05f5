import pytest

from ipd_engine.agents import (
    AlwaysCooperate, AlwaysDefect, Random, TitForTat, create_custom_strategy,
)
from ipd_engine.core import DEFAULT_PAYOFF_MATRIX, InvalidArgumentError, Move, PayoffMatrix
from ipd_engine.match import MatchSimulator, run_match

C = Move.COOPERATE
D = Move.DEFECT


@pytest.fixture
def simulator():
    return MatchSimulator(DEFAULT_PAYOFF_MATRIX, seed=1234)


class TestMatchOutcomes:
    """Canonical outcomes under the standard payoff matrix"""

    @pytest.mark.parametrize("n", [1, 5, 50])
    def test_mutual_cooperation(self, simulator, n):
        history = simulator.play_match(AlwaysCooperate(), AlwaysCooperate(), n)
        assert [(r.player1_move, r.player2_move) for r in history] == [(C, C)] * n
        assert simulator.get_total_scores() == (3 * n, 3 * n)

    @pytest.mark.parametrize("n", [1, 7, 40])
    def test_mutual_defection(self, simulator, n):
        simulator.play_match(AlwaysDefect(), AlwaysDefect(), n)
        assert simulator.get_total_scores() == (n, n)

    @pytest.mark.parametrize("n", [1, 2, 10])
    def test_tit_for_tat_against_always_defect(self, simulator, n):
        history = simulator.play_match(TitForTat(), AlwaysDefect(), n)
        assert (history[0].player1_move, history[0].player2_move) == (C, D)
        assert all((r.player1_move, r.player2_move) == (D, D) for r in history[1:])
        score_tft, score_ad = simulator.get_total_scores()
        assert score_tft == 0 + (n - 1) * 1
        assert score_ad == 5 + (n - 1) * 1

    def test_totals_match_round_detail(self, simulator):
        history = simulator.play_match(Random(), TitForTat(), 60, noise_level=0.2)
        assert simulator.get_total_scores() == (
            sum(r.player1_score for r in history),
            sum(r.player2_score for r in history),
        )
        for r in history:
            assert (r.player1_score, r.player2_score) == DEFAULT_PAYOFF_MATRIX.payoff(r.player1_move, r.player2_move)

    def test_round_indices_are_one_based(self, simulator):
        history = simulator.play_match(TitForTat(), AlwaysCooperate(), 4)
        assert [r.round for r in history] == [1, 2, 3, 4]

    def test_custom_payoff_matrix(self):
        matrix = PayoffMatrix({('C', 'C'): (2, 2), ('C', 'D'): (-1, 4),
                               ('D', 'C'): (4, -1), ('D', 'D'): (0, 0)})
        sim = MatchSimulator(matrix)
        sim.play_match(AlwaysCooperate(), AlwaysDefect(), 3)
        assert sim.get_total_scores() == (-3, 12)


class TestHistoryState:
    """History bookkeeping and reset semantics"""

    def test_empty_history_rates(self, simulator):
        assert simulator.get_cooperation_rates() == (0, 0)
        assert simulator.play_match(TitForTat(), TitForTat(), 0) == []
        assert simulator.get_cooperation_rates() == (0, 0)
        assert simulator.get_total_scores() == (0, 0)

    def test_cooperation_rates(self, simulator):
        simulator.play_match(TitForTat(), AlwaysDefect(), 4)
        assert simulator.get_cooperation_rates() == (0.25, 0.0)

    def test_play_round_appends(self, simulator):
        first = simulator.play_round(TitForTat(), AlwaysDefect())
        second = simulator.play_round(TitForTat(), AlwaysDefect())
        assert (first.round, second.round) == (1, 2)
        assert simulator.get_history() == (first, second)
        assert second.player1_move is D

    def test_play_match_resets_previous_history(self, simulator):
        simulator.play_match(AlwaysDefect(), AlwaysDefect(), 5)
        history = simulator.play_match(AlwaysCooperate(), AlwaysCooperate(), 2)
        assert len(history) == 2
        assert simulator.get_total_scores() == (6, 6)

    def test_returned_history_is_a_copy(self, simulator):
        history = simulator.play_match(AlwaysCooperate(), AlwaysCooperate(), 3)
        history.clear()
        assert len(simulator.get_history()) == 3

    def test_reset_keeps_payoff_matrix(self, simulator):
        simulator.play_match(AlwaysCooperate(), AlwaysDefect(), 3)
        simulator.reset()
        assert simulator.get_history() == ()
        assert simulator.round_number == 0
        assert simulator.get_payoff_matrix() is DEFAULT_PAYOFF_MATRIX


class TestArgumentValidation:
    """Invalid arguments are rejected, never clamped"""

    @pytest.mark.parametrize("rounds", [-1, 2.5, None])
    def test_bad_round_counts(self, simulator, rounds):
        with pytest.raises(InvalidArgumentError):
            simulator.play_match(TitForTat(), TitForTat(), rounds)

    @pytest.mark.parametrize("noise", [-0.1, 1.5])
    def test_bad_noise(self, simulator, noise):
        with pytest.raises(InvalidArgumentError):
            simulator.play_match(TitForTat(), TitForTat(), 5, noise_level=noise)

    @pytest.mark.parametrize("noise", [5, -0.5, "0.1"])
    def test_play_round_rejects_bad_noise(self, simulator, noise):
        with pytest.raises(InvalidArgumentError):
            simulator.play_round(AlwaysCooperate(), AlwaysCooperate(), noise_level=noise)
        assert simulator.get_history() == ()
        assert simulator.round_number == 0

    def test_rejection_leaves_history_untouched(self, simulator):
        simulator.play_match(AlwaysCooperate(), AlwaysCooperate(), 3)
        with pytest.raises(InvalidArgumentError):
            simulator.play_match(AlwaysCooperate(), AlwaysCooperate(), 3, noise_level=2)
        assert len(simulator.get_history()) == 3


class TestNoise:
    """Noise flips realized moves after decide() and before history"""

    def test_full_noise_flips_every_move(self, simulator):
        history = simulator.play_match(AlwaysCooperate(), AlwaysCooperate(), 6, noise_level=1.0)
        assert all((r.player1_move, r.player2_move) == (D, D) for r in history)
        assert simulator.get_total_scores() == (6, 6)

    def test_strategies_only_see_realized_moves(self, simulator):
        seen = []

        def recorder(own, opp):
            seen.append((tuple(own), tuple(opp)))
            return C

        observer = create_custom_strategy("observer", "Observer", "", recorder)
        history = simulator.play_match(observer, TitForTat(), 5, noise_level=1.0)

        realized_own = tuple(r.player1_move for r in history)
        realized_opp = tuple(r.player2_move for r in history)
        for i, (own, opp) in enumerate(seen):
            assert own == realized_own[:i]
            assert opp == realized_opp[:i]
        # Observer always intends C, so under full noise it always plays D
        assert set(realized_own) == {D}

    def test_tit_for_tat_reacts_to_noisy_move(self, simulator):
        history = simulator.play_match(TitForTat(), AlwaysCooperate(), 4, noise_level=1.0)
        # Round 1: both intend C, realized D. Afterwards TFT copies the realized D,
        # which noise turns into C, while AlwaysCooperate keeps being flipped to D.
        assert [r.player1_move for r in history] == [D, C, C, C]
        assert [r.player2_move for r in history] == [D, D, D, D]

    def test_seeded_noise_is_reproducible(self):
        first = MatchSimulator(seed=99).play_match(Random(), TitForTat(), 80, noise_level=0.1)
        second = MatchSimulator(seed=99).play_match(Random(), TitForTat(), 80, noise_level=0.1)
        assert first == second

    def test_no_noise_means_no_flips(self, simulator):
        history = simulator.play_match(AlwaysCooperate(), AlwaysDefect(), 30, noise_level=0.0)
        assert all((r.player1_move, r.player2_move) == (C, D) for r in history)


class TestRunMatch:

    def test_match_result(self):
        result = run_match(TitForTat(), AlwaysDefect(), DEFAULT_PAYOFF_MATRIX, 3)
        assert (result.strategy1_score, result.strategy2_score) == (2, 7)
        assert result.rounds == 3
        assert result.strategy1_cooperations == 1
        assert result.strategy2_cooperations == 0
        assert result.cooperation_rates == (pytest.approx(1 / 3), 0.0)
        assert result.to_dict()['moves'] == [('C', 'D'), ('D', 'D'), ('D', 'D')]
