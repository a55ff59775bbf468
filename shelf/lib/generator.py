"""Password, passphrase and PIN generation plus a strength heuristic.

Everything here is stateless and draws randomness from `secrets`.
"""
from __future__ import annotations
import math, re, secrets, string
from dataclasses import dataclass
from typing import List
from config.settings import GENERATOR_MAX_ATTEMPTS, PIN_DIGIT_ATTEMPTS

class GeneratorError(Exception):
	pass

class EmptyCharacterPool(GeneratorError):
	pass

class UnsatisfiableConstraint(GeneratorError):
	pass


UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
NUMBERS = string.digits
SYMBOLS = '!@#$%^&*()-_=+[]{}|;:,.<>?/'
AMBIGUOUS = '1lI0O{}[]()/\\\'"`~,;:.<>'
SIMILAR = 'il1Lo0O'

# fallback pools, free of look-alike characters
SAFE_UPPERCASE = 'ABCDEFGHJKLMNPQRSTUVWXYZ'
SAFE_LOWERCASE = 'abcdefghijkmnopqrstuvwxyz'
SAFE_NUMBERS = '23456789'
SAFE_SYMBOLS = '!@#$%^&*()-_=+'

PASSPHRASE_SYMBOLS = '!@#$%^&*'
WORDS = (
	'apple', 'banana', 'carrot', 'diamond', 'elephant', 'forest',
	'garden', 'harbor', 'island', 'jungle', 'kitchen', 'lemon',
	'mountain', 'notebook', 'orange', 'penguin', 'quarter', 'river',
	'sunset', 'tiger', 'umbrella', 'violet', 'window', 'xylophone',
	'yellow', 'zebra', 'aircraft', 'butterfly', 'cactus', 'dolphin',
	'eagle', 'falcon', 'giraffe', 'harvest', 'igloo', 'jacket',
	'kangaroo', 'lighthouse', 'mushroom', 'nutmeg', 'octopus', 'panda',
	'quilt', 'rainbow', 'sailboat', 'tornado', 'unicorn', 'volcano',
	'waterfall', 'xylitol', 'yogurt', 'zucchini',
)

STRENGTH_LABELS = ('Very Weak', 'Weak', 'Medium', 'Strong', 'Very Strong')
_SEQUENCES = re.compile(r'abcdef|qwerty|asdfgh|zxcvbn|12345|09876', re.IGNORECASE)
_RUNS = re.compile(r'(.)\1{2,}')
_rng = secrets.SystemRandom()


def _is_symbol(c: str) -> bool:
	return c not in UPPERCASE and c not in LOWERCASE and c not in NUMBERS


def generate_password(length: int = 16, uppercase: bool = True, lowercase: bool = True,
		numbers: bool = True, symbols: bool = True, exclude_ambiguous: bool = False,
		exclude_similar: bool = False, required: str = '', excluded: str = '',
		no_consecutive: bool = False, no_repeats: bool = False) -> str:
	"""Generate a random password from the selected character classes.

	Candidates are drawn until one holds a character from every selected class
	and every `required` character. If that fails GENERATOR_MAX_ATTEMPTS times
	a plain password from the look-alike-free pools is returned instead: the
	call always terminates, at the cost of the stricter constraints.
	"""
	if length < 1:
		raise GeneratorError('Length must be positive')
	if not (uppercase or lowercase or numbers or symbols):
		lowercase = True
	classes = [(UPPERCASE, uppercase), (LOWERCASE, lowercase), (NUMBERS, numbers), (SYMBOLS, symbols)]
	removed = set(excluded)
	if exclude_ambiguous: removed.update(AMBIGUOUS)
	if exclude_similar: removed.update(SIMILAR)
	pool = ''.join(c for chars, on in classes if on for c in chars if c not in removed)
	must = ''.join(dict.fromkeys(c for c in required if c not in excluded))
	pool += ''.join(c for c in must if c not in pool)
	if not pool:
		raise EmptyCharacterPool('No characters available after applying exclusions')

	# only classes that still have members after exclusions are demanded
	demanded = [set(chars) & set(pool) for chars, on in classes if on]
	demanded = [s for s in demanded if s]
	for _ in range(GENERATOR_MAX_ATTEMPTS):
		candidate = _random_password(length, pool, must, no_consecutive, no_repeats)
		if any(c not in candidate for c in must):
			continue
		if not all(s.intersection(candidate) for s in demanded):
			continue
		if no_repeats and len(set(candidate)) != len(candidate):
			continue
		if no_consecutive and any(a == b for a, b in zip(candidate, candidate[1:])):
			continue
		return candidate
	return _simple_password(length, uppercase, lowercase, numbers, symbols, removed)

def _random_password(length: int, pool: str, must: str, no_consecutive: bool, no_repeats: bool) -> str:
	out: List[str] = []; used = set(); last = ''
	for _ in range(length):
		for _attempt in range(PIN_DIGIT_ATTEMPTS):
			c = secrets.choice(pool)
			if no_consecutive and c == last: continue
			if no_repeats and c in used: continue
			break
		out.append(c); used.add(c); last = c
	# required characters go to random distinct positions
	if must and len(must) <= length:
		for pos, c in zip(_rng.sample(range(length), len(must)), must):
			out[pos] = c
	return ''.join(out)

def _simple_password(length: int, uppercase: bool, lowercase: bool, numbers: bool, symbols: bool,
		removed: set = frozenset()) -> str:
	pool = ''
	if uppercase: pool += SAFE_UPPERCASE
	if lowercase: pool += SAFE_LOWERCASE
	if numbers: pool += SAFE_NUMBERS
	if symbols: pool += SAFE_SYMBOLS
	pool = ''.join(c for c in pool if c not in removed)
	if not pool: pool = SAFE_LOWERCASE + SAFE_NUMBERS
	return ''.join(secrets.choice(pool) for _ in range(length))


def generate_passphrase(words: int = 4, capitalize: bool = True, include_number: bool = True,
		include_symbol: bool = True, separator: str = '-') -> str:
	if words < 1:
		raise GeneratorError('Need at least one word')
	parts = [secrets.choice(WORDS) for _ in range(words)]
	if capitalize:
		parts = [w[0].upper() + w[1:] for w in parts]
	if include_number:
		parts.append(str(secrets.randbelow(100) + 1))
	if include_symbol:
		parts.append(secrets.choice(PASSPHRASE_SYMBOLS))
	return separator.join(parts)


def generate_pin(length: int = 4, no_repeats: bool = False, no_consecutive: bool = False) -> str:
	"""Random digit PIN.

	`no_consecutive` rejects numerically adjacent digits (4 then 5, or 5 then 4).
	A draw that paints itself into a corner is retried PIN_DIGIT_ATTEMPTS
	times; after that the constraints are dropped and generation restarts once.
	"""
	if length < 1:
		raise GeneratorError('Length must be positive')
	if no_repeats and length > 10:
		raise UnsatisfiableConstraint('Cannot generate PIN with no repeats longer than 10 digits')
	for _ in range(PIN_DIGIT_ATTEMPTS):
		pin = _draw_pin(length, no_repeats, no_consecutive)
		if pin is not None:
			return pin
	return _draw_pin(length, False, False)

def _draw_pin(length: int, no_repeats: bool, no_consecutive: bool) -> str | None:
	digits: List[int] = []
	for _ in range(length):
		allowed = [d for d in range(10)
			if not (no_repeats and d in digits)
			and not (no_consecutive and digits and abs(d - digits[-1]) == 1)]
		if not allowed:
			return None
		digits.append(secrets.choice(allowed))
	return ''.join(map(str, digits))


@dataclass(frozen=True)
class StrengthReport:
	score: int
	label: str
	entropy: int
	feedback: str


def evaluate_password_strength(password: str) -> StrengthReport:
	"""Advisory 0-4 score; not a security boundary."""
	if not password:
		return StrengthReport(0, 'None', 0, 'No password provided')
	score = 0; fb: List[str] = []
	L = len(password)
	score += sum(L >= n for n in (8, 12, 16, 20, 24))

	has_upper = any(c in UPPERCASE for c in password)
	has_lower = any(c in LOWERCASE for c in password)
	has_digit = any(c in NUMBERS for c in password)
	has_symbol = any(_is_symbol(c) for c in password)
	charset = 26*has_upper + 26*has_lower + 10*has_digit + 33*has_symbol
	entropy = L * math.log2(charset) if charset else 0.0
	score += sum(entropy > n for n in (50, 60, 80, 100))
	score += has_upper + has_lower + has_digit + has_symbol

	if _SEQUENCES.search(password):
		score -= 1; fb.append('Avoid sequences of characters or numbers')
	runs = [m.group(0) for m in _RUNS.finditer(password)]
	if runs:
		score -= len(runs); fb.append('Avoid repeating characters')
	if password.isascii() and password.isalpha():
		score -= 2; fb.append('Add numbers and symbols')
	if password.isascii() and password.isdigit():
		score -= 2; fb.append('Add letters and symbols')

	normalized = max(0, min(4, score // 3))
	if normalized <= 1: fb.append('Consider using a longer password with more variety')
	elif normalized == 2: fb.append('Good start, but could be stronger with more complexity')
	elif normalized == 3: fb.append('Strong password, but even more length adds security')
	else: fb.append('Excellent password strength')
	return StrengthReport(normalized, STRENGTH_LABELS[normalized], round(entropy), '. '.join(fb))
