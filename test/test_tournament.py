import asyncio

import pytest

from ipd_engine.agents import (
    AlwaysCooperate, AlwaysDefect, GenerousTitForTat, Grudger, Pavlov, Random, TitForTat,
    default_registry,
)
from ipd_engine.core import DEFAULT_PAYOFF_MATRIX, InvalidArgumentError
from ipd_engine.tournament import TieBreak, TournamentEngine, calculate_standings


@pytest.fixture
def engine():
    return TournamentEngine(DEFAULT_PAYOFF_MATRIX, rounds_per_match=10, seed=7)


def by_id(tournament):
    return {s.strategy_id: s for s in tournament.standings}


class TestRoundRobin:
    """Round-robin tournament runs"""

    def test_requires_two_strategies(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.run_tournament([TitForTat()])
        with pytest.raises(InvalidArgumentError):
            engine.run_tournament([])

    def test_rejects_duplicate_ids(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.run_tournament([TitForTat(), TitForTat()])

    def test_known_standings(self, engine):
        tournament = engine.run_tournament([AlwaysCooperate(), AlwaysDefect(), TitForTat()])
        standings = by_id(tournament)

        # AC-AD 0:50, AC-TFT 30:30, AD-TFT 14:9
        assert standings["always_defect"].total_score == 64
        assert standings["tit_for_tat"].total_score == 39
        assert standings["always_cooperate"].total_score == 30
        assert [s.strategy_id for s in tournament.standings] == ["always_defect", "tit_for_tat", "always_cooperate"]
        assert tournament.winner.id == "always_defect"

        assert (standings["always_defect"].wins, standings["always_defect"].losses) == (2, 0)
        assert (standings["tit_for_tat"].wins, standings["tit_for_tat"].losses, standings["tit_for_tat"].ties) == (0, 1, 1)
        assert standings["always_defect"].average_score == 32
        assert standings["tit_for_tat"].cooperation_rate == pytest.approx(11 / 20)
        assert standings["always_cooperate"].cooperation_rate == 1.0
        assert standings["always_defect"].cooperation_rate == 0.0

    def test_each_pair_plays_exactly_once(self, engine):
        strategies = list(default_registry())
        tournament = engine.run_tournament(strategies)
        n = len(strategies)

        assert len(tournament.matches) == n * (n - 1) // 2
        pairs = {frozenset((m.strategy1.id, m.strategy2.id)) for m in tournament.matches}
        assert len(pairs) == len(tournament.matches)
        assert all(m.strategy1.id != m.strategy2.id for m in tournament.matches)

        for standing in tournament.standings:
            assert standing.wins + standing.losses + standing.ties == n - 1
            assert standing.matches_played == n - 1
            assert standing.total_rounds == (n - 1) * 10

    def test_standings_sorted_by_score(self, engine):
        tournament = engine.run_tournament(list(default_registry()))
        scores = [s.total_score for s in tournament.standings]
        assert scores == sorted(scores, reverse=True)
        assert tournament.winner.id == tournament.standings[0].strategy_id

    def test_tournament_record(self, engine):
        tournament = engine.run_tournament([TitForTat(), Grudger()])
        assert tournament.is_complete
        assert tournament.current_round == 1
        assert len(tournament.rounds) == 1
        assert tournament.id.startswith("tournament_")

    def test_summary_dataframe(self, engine):
        df = engine.run_tournament([AlwaysCooperate(), AlwaysDefect(), TitForTat()]).get_summary_stats()
        assert list(df["strategy_id"]) == ["always_defect", "tit_for_tat", "always_cooperate"]
        assert list(df["rank"]) == [1, 2, 3]
        assert df.loc[0, "total_score"] == 64


class TestTieBreak:
    """Equal totals are ordered by the engine's named policy"""

    def test_strategy_id_policy(self):
        engine = TournamentEngine(rounds_per_match=10, tie_break=TieBreak.STRATEGY_ID)
        tournament = engine.run_tournament([TitForTat(), AlwaysCooperate()])
        assert [s.strategy_id for s in tournament.standings] == ["always_cooperate", "tit_for_tat"]
        assert tournament.winner.id == "always_cooperate"

    def test_input_order_policy(self):
        engine = TournamentEngine(rounds_per_match=10, tie_break="input_order")
        tournament = engine.run_tournament([TitForTat(), AlwaysCooperate()])
        assert [s.strategy_id for s in tournament.standings] == ["tit_for_tat", "always_cooperate"]
        assert tournament.winner.id == "tit_for_tat"

    def test_calculate_standings_without_matches(self):
        standings = calculate_standings([TitForTat(), AlwaysDefect()], [])
        assert [s.strategy_id for s in standings] == ["always_defect", "tit_for_tat"]
        assert all(s.average_score == 0 and s.cooperation_rate == 0 for s in standings)


class TestReproducibility:
    """Seeded engines give identical results"""

    def strategies(self):
        return [Random(), GenerousTitForTat(), TitForTat(), Pavlov(), AlwaysDefect()]

    def test_same_seed_same_standings(self):
        first = TournamentEngine(rounds_per_match=50, noise_level=0.05, seed=42).run_tournament(self.strategies())
        second = TournamentEngine(rounds_per_match=50, noise_level=0.05, seed=42).run_tournament(self.strategies())
        assert first.standings == second.standings
        assert [m.results for m in first.matches] == [m.results for m in second.matches]

    def test_async_matches_sync(self):
        sync = TournamentEngine(rounds_per_match=50, noise_level=0.05, seed=5).run_tournament(self.strategies())
        engine = TournamentEngine(rounds_per_match=50, noise_level=0.05, seed=5)
        concurrent = asyncio.run(engine.run_tournament_async(self.strategies(), max_concurrent=3))
        assert sync.standings == concurrent.standings
        assert [m.results for m in sync.matches] == [m.results for m in concurrent.matches]

    def test_async_rejects_single_strategy(self):
        engine = TournamentEngine(rounds_per_match=5)
        with pytest.raises(InvalidArgumentError):
            asyncio.run(engine.run_tournament_async([TitForTat()]))


class TestElimination:
    """Single elimination bracket"""

    def test_bracket(self, engine):
        tournament = engine.run_elimination_tournament(
            [AlwaysDefect(), AlwaysCooperate(), TitForTat(), Grudger()])

        assert len(tournament.rounds) == 2
        first, final = tournament.rounds
        assert [(m.strategy1.id, m.strategy2.id) for m in first.matches] == [
            ("always_defect", "always_cooperate"), ("tit_for_tat", "grudger")]
        # TFT and Grudger tie 30:30, so the first of the pair advances
        assert [(m.strategy1.id, m.strategy2.id) for m in final.matches] == [("always_defect", "tit_for_tat")]
        assert tournament.winner.id == "always_defect"
        assert len(first.standings) == 4
        assert len(final.standings) == 2
        assert tournament.current_round == 2

    def test_odd_field_gets_a_bye(self, engine):
        tournament = engine.run_elimination_tournament([AlwaysCooperate(), AlwaysDefect(), TitForTat()])
        first = tournament.rounds[0]
        assert len(first.matches) == 1
        assert by_id_round(first)["tit_for_tat"].matches_played == 0
        assert tournament.winner.id == "always_defect"

    def test_requires_two_strategies(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.run_elimination_tournament([AlwaysDefect()])


def by_id_round(tournament_round):
    return {s.strategy_id: s for s in tournament_round.standings}


class TestHeadToHead:

    def test_stats(self, engine):
        stats = engine.get_head_to_head_stats(AlwaysDefect(), AlwaysCooperate(), num_matches=5)
        assert (stats.strategy1_wins, stats.strategy2_wins, stats.ties) == (5, 0, 0)
        assert stats.average_scores == (50, 0)
        assert stats.cooperation_rates == (0.0, 1.0)
        assert stats.matches == 5

    def test_ties(self, engine):
        stats = engine.get_head_to_head_stats(TitForTat(), Grudger(), num_matches=3)
        assert stats.ties == 3
        assert stats.average_scores == (30, 30)

    def test_invalid_arguments(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.get_head_to_head_stats(TitForTat(), AlwaysDefect(), num_matches=0)
        with pytest.raises(InvalidArgumentError):
            engine.get_head_to_head_stats(TitForTat(), TitForTat())


class TestSettings:

    @pytest.mark.parametrize("kwargs", [{"rounds_per_match": -1}, {"noise_level": 1.2}])
    def test_constructor_validation(self, kwargs):
        with pytest.raises(InvalidArgumentError):
            TournamentEngine(DEFAULT_PAYOFF_MATRIX, **kwargs)

    def test_update_settings(self, engine):
        engine.update_settings(rounds_per_match=3, noise_level=0.5)
        assert (engine.rounds_per_match, engine.noise_level) == (3, 0.5)

    def test_rejected_update_changes_nothing(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.update_settings(rounds_per_match=20, noise_level=-1)
        assert (engine.rounds_per_match, engine.noise_level) == (10, 0.0)
