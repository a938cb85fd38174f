#!/usr/bin/env python3
"""
year_guessing_game.py — "Guess the Year" with a random Kulturpool object.

Fetches one random object that has a dateMin, shows its title and image URL,
and gives the player 6 tries to guess the year. Each guess gets a direction
(too high / too low) and a closeness band (5, 10, 100 years).

Usage:
    python year_guessing_game.py            # play in the terminal
    python year_guessing_game.py --tries 3  # harder
    python year_guessing_game.py --open     # also open the image in a browser
"""
from __future__ import annotations

import argparse
import logging
import re
import sys
import webbrowser
from dataclasses import dataclass, field
from typing import List, Optional

from kulturpool_api import (DATE_MIN_CUTOFF, Document, KulturpoolError, RANDOM_SORT, SearchQuery,
                            filter_lt, search)

MAX_TRIES = 6
SECONDS_PER_DAY = 86400

MSG_INVALID = "Please enter a valid year."
MSG_WIN = "Congratulations! You guessed the correct year!"
MSG_NO_OBJECT = "No object found."
MSG_FETCH_FAILED = "Failed to fetch object."

log = logging.getLogger("kulturpool.yeargame")


class InvalidGuessError(ValueError):
    pass


def random_object_query() -> SearchQuery:
    # dateMin:< guarantees the object has a dateMin at all
    return SearchQuery(q="*", per_page=1, max_facet_values=0, sort_by=RANDOM_SORT,
                       use_cache=False, filter_by=filter_lt("dateMin", DATE_MIN_CUTOFF))


def year_from_unix(ts: Optional[int]) -> Optional[int]:
    """UTC proleptic-Gregorian year of a unix timestamp, valid far before year 1."""
    if ts is None:
        return None
    days = ts // SECONDS_PER_DAY
    # civil-from-days: shift epoch to 0000-03-01, split into 400-year eras
    z = days + 719468
    era = z // 146097
    doe = z - era * 146097
    yoe = (doe - doe // 1460 + doe // 36524 - doe // 146096) // 365
    doy = doe - (365 * yoe + yoe // 4 - yoe // 100)
    mp = (5 * doy + 2) // 153
    month = mp + 3 if mp < 10 else mp - 9
    return yoe + era * 400 + (1 if month <= 2 else 0)


_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")


def parse_guess(text: str) -> int:
    """Leading integer of `text` ("1850abc" -> 1850)."""
    m = _LEADING_INT.match(text or "")
    if not m:
        raise InvalidGuessError(MSG_INVALID)
    return int(m.group(1))


def arrow_class(range_: int) -> str:
    if range_ > 100:
        return "dark-red"
    if range_ > 10:
        return "light-red"
    if range_ > 5:
        return "orange"
    return "green"


def result_label(range_: int) -> str:
    if range_ <= 5:
        return "within 5 years"
    if range_ <= 10:
        return "within 10 years"
    if range_ <= 100:
        return "within 100 years"
    return "over 100 years"


def closeness_message(diff: int) -> str:
    range_ = abs(diff)
    if range_ <= 5:
        msg = "Very close! (within 5 years)"
    elif range_ <= 10:
        msg = "Close! (within 10 years)"
    elif range_ <= 100:
        msg = "Somewhat close (within 100 years)"
    else:
        msg = "Far off (more than 100 years)"
    if diff == 0:
        return msg + " 🎉 Correct!"
    return msg + (" (Too high)" if diff > 0 else " (Too low)")


@dataclass
class GuessRecord:
    attempt: int
    guess: int
    diff: int

    @property
    def range(self) -> int:
        return abs(self.diff)

    @property
    def correct(self) -> bool:
        return self.diff == 0

    @property
    def arrow(self) -> str:
        return "▲" if self.diff < 0 else "▼"

    def row(self) -> str:
        if self.correct:
            return f"{self.attempt:>3}  {self.guess:>6}  ✔️ Correct"
        return f"{self.attempt:>3}  {self.guess:>6}  {self.arrow} {result_label(self.range)}"


@dataclass
class YearGame:
    answer: int
    max_tries: int = MAX_TRIES
    title: str = "Untitled"
    image_url: Optional[str] = None
    history: List[GuessRecord] = field(default_factory=list)
    finished: bool = False

    @classmethod
    def from_document(cls, doc: Document, max_tries: int = MAX_TRIES) -> "YearGame":
        answer = year_from_unix(doc.date_min)
        if answer is None:
            raise KulturpoolError("Object has no dateMin")
        return cls(answer=answer, max_tries=max_tries, title=doc.title or "Untitled",
                   image_url=doc.is_shown_by)

    @property
    def tries(self) -> int:
        return len(self.history)

    @property
    def tries_left(self) -> int:
        return self.max_tries - self.tries

    @property
    def won(self) -> bool:
        return bool(self.history) and self.history[-1].correct

    def submit(self, text: str) -> Optional[GuessRecord]:
        """Record one guess. Invalid input raises and does not use a try."""
        if self.finished:
            return None
        guess = parse_guess(text)
        record = GuessRecord(self.tries + 1, guess, guess - self.answer)
        self.history.append(record)
        if record.correct or self.tries >= self.max_tries:
            self.finished = True
        return record

    def end_message(self) -> Optional[str]:
        if not self.finished:
            return None
        if self.won:
            return MSG_WIN
        return f"Game over! The correct year was {self.answer}."

    def reset(self, answer: Optional[int] = None) -> None:
        if answer is not None:
            self.answer = answer
        self.history = []
        self.finished = False


def fetch_random_object() -> Document:
    """One random dated object. KulturpoolError carries the user-facing message."""
    try:
        result = search(random_object_query())
    except KulturpoolError as e:
        log.warning("Object fetch failed: %s", e)
        raise KulturpoolError(MSG_FETCH_FAILED) from e
    if not result.documents:
        raise KulturpoolError(MSG_NO_OBJECT)
    return result.documents[0]


def new_game(max_tries: int = MAX_TRIES) -> YearGame:
    return YearGame.from_document(fetch_random_object(), max_tries=max_tries)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def play_round(game: YearGame, read=input, open_image: bool = False) -> bool:
    """Interactive loop for one object. Returns False when the player quits."""
    print(f"\n{game.title}")
    print(f"  {game.image_url}" if game.image_url else "  No image available.")
    if open_image and game.image_url:
        webbrowser.open_new_tab(game.image_url)

    while not game.finished:
        try:
            text = read(f"Tries left: {game.tries_left} — your guess (q to quit): ")
        except EOFError:
            return False
        if text.strip().lower() in ("q", "quit", "exit"):
            return False
        try:
            record = game.submit(text)
        except InvalidGuessError as e:
            print(f"  {e}")
            continue
        print(f"  {record.row()}    {closeness_message(record.diff)}")
    print(game.end_message())
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Guess the year of a random Kulturpool object")
    parser.add_argument("--tries", type=int, default=MAX_TRIES)
    parser.add_argument("--open", action="store_true", help="Open the object's image in a browser")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s  %(levelname)-7s  %(message)s")

    try:
        while True:
            try:
                game = new_game(args.tries)
            except KulturpoolError as e:
                print(e, file=sys.stderr)
                return 1
            if not play_round(game, open_image=args.open):
                break
            again = input("Play again? [y/N] ").strip().lower()
            if again not in ("y", "yes"):
                break
    except (KeyboardInterrupt, EOFError):
        print()
    print("Bye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
