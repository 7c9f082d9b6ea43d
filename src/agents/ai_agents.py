"""
AI Agents for SakuPintar

CRITICAL BOUNDARIES:

1. TRANSACTION PARSER:
   - CAN: Turn a sentence into transaction fields
   - CANNOT: Persist anything (the caller decides)
   - CANNOT: Invent categories (output is mapped onto existing ones)

2. NEEDS/WANTS CLASSIFIER:
   - CAN: Label each expense NEED or WANT and write an insight
   - CANNOT: Do arithmetic for us. Totals and percentages are
     recomputed locally from the real amounts.

3. PURCHASE ADVISOR / FINANCE ADVISOR:
   - Purely advisory, nothing is stored

Every entry point is total: on any model failure it returns a
well-formed fallback value instead of raising.
"""

import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Sequence

import structlog

from src.agents.model_client import (
    GeminiJsonClient,
    JsonModelClient,
    ModelClientError,
)
from src.config import get_settings
from src.models.chat import ParsedTransaction
from src.models.finance import (
    CategoryState,
    NeedsWantsSummary,
    PurchaseAnalysis,
    Transaction,
    TransactionType,
    TransactionVerdict,
    Verdict,
)
from src.queries.metrics import HEALTH_TARGETS
from src.services.storage.categories import (
    CategoryMatcher,
    keyword_matcher,
    match_category,
)


logger = structlog.get_logger(__name__)


# Fallback texts shown to the user (Indonesian, like the rest of the UI)
FALLBACK_NEEDS_WANTS_INSIGHT = (
    "Analisis AI belum tersedia. Untuk sementara semua pengeluaran "
    "dianggap Keinginan. Coba lagi nanti."
)
NO_EXPENSES_INSIGHT = "Belum ada pengeluaran bulan ini untuk dianalisis."
FALLBACK_FINANCE_ADVICE = (
    "Terjadi kesalahan saat menghubungi asisten AI. Pastikan API Key valid."
)

ASSISTANT_PERSONA = "Kamu adalah asisten keuangan SakuPintar yang cerdas dan ramah."


def fallback_purchase_analysis() -> PurchaseAnalysis:
    return PurchaseAnalysis(
        verdict=Verdict.WANT,
        score=0,
        reasoning="Gagal menganalisis. Coba lagi.",
        recommendation="Pikirkan kembali.",
        alternatives="-",
    )


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def _percentage(part: Decimal, total: Decimal) -> int:
    if total <= 0:
        return 0
    return int((part * 100 / total).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def summarize_needs_wants(
    expenses: Sequence[Transaction],
    verdicts: dict[str, Verdict],
    insight: str,
    is_fallback: bool = False,
) -> NeedsWantsSummary:
    """
    Build the summary from local amounts and the model's verdicts.

    Any expense without a verdict counts as WANT, so
    needs_total + wants_total always equals the sum of the expenses.
    """
    needs_total = Decimal("0")
    wants_total = Decimal("0")
    breakdown = []

    for t in expenses:
        verdict = verdicts.get(t.id, Verdict.WANT)
        if verdict == Verdict.NEED:
            needs_total += t.amount
        else:
            wants_total += t.amount
        breakdown.append(TransactionVerdict(transaction_id=t.id, verdict=verdict))

    total = needs_total + wants_total
    needs_percentage = _percentage(needs_total, total)
    wants_percentage = 100 - needs_percentage if total > 0 else 0

    return NeedsWantsSummary(
        needs_total=needs_total,
        wants_total=wants_total,
        needs_percentage=needs_percentage,
        wants_percentage=wants_percentage,
        insight=insight,
        breakdown=breakdown,
        is_fallback=is_fallback,
    )


def build_chat_instruction(
    categories: CategoryState,
    currency_symbol: Optional[str] = None,
) -> str:
    """System instruction for the chat assistant."""
    currency = currency_symbol or get_settings().app.currency_symbol
    targets = "\n".join(
        f"- {label} {'<=' if is_limit else '>='} {target}%"
        for _, label, target, is_limit, _, _ in HEALTH_TARGETS
    )
    return f"""You are "SakuBot", the friendly AI chat buddy inside the SakuPintar app for students.
Always reply in casual, encouraging Indonesian. Emoji are welcome.

MAIN TASKS:
1. Answer the student's money questions.
2. RECORD TRANSACTIONS. When the user wants to record income or an expense,
   call the addTransaction tool instead of replying in text.
3. Explain needs vs wants when asked.

Amounts are in {currency}.

AVAILABLE CATEGORIES (use exactly one of these):
- Income: {', '.join(categories.income)}
- Expense: {', '.join(categories.expense)}

C-S-I-Z TARGETS (share of income):
{targets}"""


class TransactionParserAgent:
    """
    Parse a free-text sentence into transaction fields.

    The model's category is mapped onto an existing category of the
    parsed type; anything unrecognized becomes the fallback category.
    """

    def __init__(
        self,
        client: Optional[JsonModelClient] = None,
        matcher: Optional[CategoryMatcher] = keyword_matcher,
        fallback_category: Optional[str] = None,
    ):
        self._client = client or GeminiJsonClient()
        self._matcher = matcher
        self._fallback = fallback_category or get_settings().app.fallback_category

    async def parse(
        self,
        text: str,
        categories: CategoryState,
        today: Optional[date] = None,
    ) -> Optional[ParsedTransaction]:
        """Returns None when the text cannot be parsed."""
        if not text or not text.strip():
            return None

        today = today or date.today()
        prompt = f"""Extract transaction details from this user text: "{text.strip()}".

Context:
- Today's date is {today.isoformat()}.
- Available income categories: {', '.join(categories.income)}
- Available expense categories: {', '.join(categories.expense)}

Instructions:
1. Decide whether it is INCOME or EXPENSE.
2. Extract the amount as a plain number.
3. Pick the closest available category for that type. If unsure, use "{self._fallback}".
4. Resolve relative dates ("kemarin", "hari ini") against today's date. Default to today.
5. Write a short description in Indonesian.

Respond with ONLY a JSON object in this exact format:
{{"amount": 15000, "type": "EXPENSE", "category": "Makanan", "date": "YYYY-MM-DD", "description": "..."}}"""

        try:
            data = await self._client.generate_json(prompt)
            transaction_type = TransactionType(str(data.get("type", "")).strip().upper())
            amount = _to_decimal(data.get("amount"))
            if amount < 0:
                raise ValueError("amount must not be negative")

            try:
                parsed_date = date.fromisoformat(str(data.get("date", "")).strip())
            except ValueError:
                parsed_date = today

            category = match_category(
                str(data.get("category") or text),
                categories.for_type(transaction_type),
                matcher=self._matcher,
                fallback=self._fallback,
            )

            return ParsedTransaction(
                type=transaction_type,
                amount=amount,
                category=category,
                date=parsed_date,
                description=str(data.get("description") or "").strip(),
            )

        except (ModelClientError, ValueError, TypeError) as e:
            logger.warning("transaction_parse_failed", error=str(e))
            return None


class NeedsWantsAgent:
    """
    Batch NEED/WANT classification of a month's expenses.

    Stateless. Only the verdicts and insight come from the model.
    """

    def __init__(self, client: Optional[JsonModelClient] = None):
        self._client = client or GeminiJsonClient()

    async def classify(self, transactions: Sequence[Transaction]) -> NeedsWantsSummary:
        expenses = [t for t in transactions if t.is_expense]
        if not expenses:
            # Nothing to ask the model; not worth caching either
            return NeedsWantsSummary(insight=NO_EXPENSES_INSIGHT, is_fallback=True)

        summary_list = "\n".join(
            f"ID: {t.id}, Item: {t.description or t.category}, "
            f"Amount: {t.amount}, Category: {t.category}"
            for t in expenses
        )
        prompt = f"""Analyze the following list of expenses for a student:
{summary_list}

Tasks:
1. Classify each transaction ID as either "NEED" (Kebutuhan) or "WANT" (Keinginan).
   - NEED: essentials like regular meals, transport, school supplies, zakat/infaq.
   - WANT: entertainment, games, pricey snacks, impulse buys.
2. Write a short "insight" paragraph in Indonesian about their spending based on this split.

Respond with ONLY a JSON object in this exact format:
{{"breakdown": [{{"id": "string", "verdict": "NEED"}}], "insight": "string"}}"""

        try:
            data = await self._client.generate_json(prompt)
            verdicts = self._parse_verdicts(data.get("breakdown"))
            insight = str(data.get("insight") or "").strip()
        except (ModelClientError, ValueError, TypeError) as e:
            logger.warning("needs_wants_fallback", error=str(e), expenses=len(expenses))
            return summarize_needs_wants(
                expenses, {}, FALLBACK_NEEDS_WANTS_INSIGHT, is_fallback=True
            )

        return summarize_needs_wants(expenses, verdicts, insight)

    @staticmethod
    def _parse_verdicts(breakdown: Any) -> dict[str, Verdict]:
        """Model breakdown -> {transaction_id: verdict}. Bad entries are skipped."""
        if not isinstance(breakdown, list):
            raise ValueError("breakdown must be a list")

        verdicts: dict[str, Verdict] = {}
        for item in breakdown:
            if not isinstance(item, dict):
                continue
            transaction_id = item.get("id") or item.get("transaction_id")
            try:
                verdict = Verdict(str(item.get("verdict", "")).strip().upper())
            except ValueError:
                continue
            if transaction_id:
                verdicts[str(transaction_id)] = verdict
        return verdicts


class PurchaseAdvisorAgent:
    """Should I buy this? Advisory only."""

    def __init__(self, client: Optional[JsonModelClient] = None):
        self._client = client or GeminiJsonClient()

    async def analyze(self, item: str, price: Any, reason: str) -> PurchaseAnalysis:
        currency = get_settings().app.currency_symbol
        prompt = f"""Analyze this potential purchase for a student:
Item: "{item}"
Price: {currency} {price}
Reason: "{reason}"

Tasks:
1. Decide whether this is a "NEED" (Kebutuhan) or a "WANT" (Keinginan).
2. Give a necessity score from 0 to 100.
3. Give reasoning, a recommendation and cheaper alternatives, in Indonesian.

Respond with ONLY a JSON object in this exact format:
{{"verdict": "NEED", "score": 50, "reasoning": "...", "recommendation": "...", "alternatives": "..."}}"""

        try:
            if not item or not item.strip():
                raise ValueError("item is required")
            if _to_decimal(price) < 0:
                raise ValueError("price must not be negative")

            data = await self._client.generate_json(prompt)
            verdict = Verdict(str(data.get("verdict", "")).strip().upper())
            raw_score = float(data.get("score"))
            if not math.isfinite(raw_score):
                raise ValueError(f"score must be finite, got {raw_score}")
            score = max(0, min(100, int(round(raw_score))))
            reasoning = str(data.get("reasoning") or "").strip()
            recommendation = str(data.get("recommendation") or "").strip()
            if not reasoning or not recommendation:
                raise ValueError("reasoning and recommendation are required")

            alternatives = data.get("alternatives")
            return PurchaseAnalysis(
                verdict=verdict,
                score=score,
                reasoning=reasoning,
                recommendation=recommendation,
                alternatives=str(alternatives).strip() if alternatives else None,
            )

        except (ModelClientError, ValueError, TypeError) as e:
            logger.warning("purchase_analysis_fallback", error=str(e), item=item)
            return fallback_purchase_analysis()


class FinanceAdvisorAgent:
    """Short free-text spending advice over the transaction history."""

    def __init__(self, client: Optional[JsonModelClient] = None):
        self._client = client or GeminiJsonClient()

    async def analyze(self, transactions: Sequence[Transaction]) -> str:
        currency = get_settings().app.currency_symbol
        history = "\n".join(
            f"- {t.date.date().isoformat()}: {t.type.value} {currency}{t.amount} "
            f"({t.category}) - {t.description}"
            for t in transactions
        )
        prompt = f"""Act as a financial advisor for a school student.
Here is the student's transaction history:
{history or "(no transactions yet)"}

Give a short analysis (at most 3 short paragraphs) of their spending habits,
then 2 practical, specific tips to save or spend better.
Use relaxed, encouraging Indonesian that a student understands.
If there is no data, give general saving tips for students."""

        try:
            return await self._client.generate_text(
                prompt, system_instruction=ASSISTANT_PERSONA
            )
        except ModelClientError as e:
            logger.warning("finance_advice_fallback", error=str(e))
            return FALLBACK_FINANCE_ADVICE
