"""Coach service: turns a question and a set of documents into a budget-safe prompt and streams the answer.

heuristic: extract terms -> acquire -> keyword scores -> pack all documents
smart:     extract terms -> acquire -> LLM judgement per document -> rank -> pack judgements
uploaded:  like heuristic, over texts the user uploaded instead of Document Store files
"""

from typing import AsyncIterator

from services.coach_pipeline.AcquisitionService import AcquisitionService
from services.coach_pipeline.AnswerStreamer import AnswerStreamer
from services.coach_pipeline.ContextPacker import ContextPacker
from services.coach_pipeline.HeuristicScorer import HeuristicScorer
from services.coach_pipeline.RelevanceJudge import RelevanceJudge
from services.coach_pipeline.ResultRanker import ResultRanker
from services.coach_pipeline.TermExtractor import TermExtractor
from shared.clients.dms.DMSClientInterface import DMSClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.credentials.CredentialProviderInterface import CredentialProviderInterface
from shared.exceptions import BudgetExceededAtInputError, CredentialExpiredError, InvalidArgumentError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentHandle, ExtractedDocument
from shared.models.search import (
    AnswerUpdate,
    AssembledContext,
    CoachMode,
    PreparedPrompt,
    RankedResults,
    SearchTermSet,
    SmartSearchReport,
    SourceReference,
)

COACH_INSTRUCTIONS = """You are Canvas Coach Maike, a professional Canvas LMS expert and coach. You MUST answer the following question by searching ALL supplied Canvas manuals THOROUGHLY and SYSTEMATICALLY.

CRITICAL SEARCH MISSION:
- READ EVERY LINE of EVERY document completely
- Look for EXACT words, SYNONYMS, RELATED terms and CONTEXT
- Pay SPECIFIC attention to settings, configurations, automatic functions, default values, points, scores and workflows
- COMBINE information from MULTIPLE documents where relevant
- Look for step-by-step instructions, procedures and concrete actions
- Note menu options, interface elements and examples
- Also look for ALTERNATIVE methods and WORKAROUNDS

ANSWER REQUIREMENTS:
- Give CONCRETE, step-by-step instructions
- Cite the EXACT source (document name) where you found the information
- If information comes from MULTIPLE sources, name them ALL
- Say "cursisten" instead of "studenten"
- Answer in the language of the question
- If you do NOT find a specific answer, say so explicitly and give RELATED information
- Give ALTERNATIVE solutions if the direct method is not available

USER QUESTION: {question}
"""

NO_SOURCE_INSTRUCTIONS = """You are Canvas Coach Maike, a professional Canvas LMS expert and coach. No relevant source document was found for the following question.
Start your answer by saying explicitly that no relevant source was found in the documents, then answer the question from your general Canvas knowledge. Say "cursisten" instead of "studenten". Answer in the language of the question.

QUESTION: {question}
"""


class CoachService:
    """Orchestrates acquisition, ranking, packing and answering for one question at a time."""

    def __init__(
        self,
        helper_config: HelperConfig,
        dms_client: DMSClientInterface,
        llm_client: LLMClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self.max_context_chars = helper_config.get_int_val("COACH_MAX_CONTEXT_CHARS", default=180000, minimum=1)

        self.term_extractor = TermExtractor()
        self.scorer = HeuristicScorer(helper_config)
        self.packer = ContextPacker(helper_config)
        self.acquisition = AcquisitionService(helper_config, dms_client)
        self.judge = RelevanceJudge(helper_config, llm_client)
        self.ranker = ResultRanker(helper_config)
        self.streamer = AnswerStreamer(helper_config, llm_client)

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_prepare_prompt(
        self,
        question: str,
        handles: list[DocumentHandle],
        credentials: CredentialProviderInterface,
        mode: CoachMode = CoachMode.HEURISTIC,
    ) -> PreparedPrompt:
        """Build the final prompt for a question over Document Store files.

        Argument and budget errors are raised before any network call.

        Args:
            question (str): The user's question.
            handles (list[DocumentHandle]): The candidate documents.
            credentials (CredentialProviderInterface): Holds the user's Document Store token.
            mode (CoachMode): HEURISTIC or SMART.

        Returns:
            PreparedPrompt: The prompt is never longer than COACH_MAX_CONTEXT_CHARS.

        Raises:
            InvalidArgumentError: Empty question or credential, or an unsupported mode.
            BudgetExceededAtInputError: If instructions, question and context header alone exceed the budget.
            CredentialExpiredError: If the Document Store rejects the token. The credential is cleared first.
        """
        question = self._require_question(question)
        if mode not in (CoachMode.HEURISTIC, CoachMode.SMART):
            raise InvalidArgumentError("Mode '%s' needs uploaded documents; use do_prepare_uploaded_prompt." % mode.value)
        credential = credentials.require()

        terms = self.term_extractor.extract_terms(question)
        preamble = COACH_INSTRUCTIONS.format(question=question)
        if mode == CoachMode.SMART:
            header = self.packer.build_judgement_header(question, len(handles))
        else:
            header = self.packer.build_header(question, terms, len(handles))
        self._check_input_budget(len(preamble) + len(header))

        self.logging.info("Preparing %s prompt over %d documents, terms: %s", mode.value, len(handles), terms.joined())
        documents = await self._do_acquire(handles, credential, credentials)
        if not documents:
            return self._build_no_source_prompt(question, terms, mode, documents_loaded=0)

        if mode == CoachMode.SMART:
            ranked = await self._do_rank(documents, question)
            if not ranked.results:
                return self._build_no_source_prompt(question, terms, mode, documents_loaded=len(documents), ranking=ranked)
            context = self.packer.pack_judgements(ranked, question, max_chars=self.max_context_chars - len(preamble))
            sources = [
                SourceReference(name=r.document.display_name, path=r.document.locator_path, score=r.relevance_score, snippet=r.summary or None)
                for r in ranked.results[:len(context.included)]
            ]
            return self._finalise(preamble, context, mode, terms, sources, len(documents), ranking=ranked)

        return self._prepare_heuristic(question, terms, documents, preamble, mode)

    async def do_prepare_uploaded_prompt(self, question: str, documents: list[ExtractedDocument]) -> PreparedPrompt:
        """Build the final prompt over documents the user uploaded. Heuristic ranking, no Document Store access.

        Raises:
            InvalidArgumentError: If the question is empty.
            BudgetExceededAtInputError: If instructions, question and context header alone exceed the budget.
        """
        question = self._require_question(question)
        terms = self.term_extractor.extract_terms(question)
        preamble = COACH_INSTRUCTIONS.format(question=question)
        self._check_input_budget(len(preamble) + len(self.packer.build_header(question, terms, len(documents))))

        usable = [doc for doc in documents if doc.text and doc.text.strip()]
        if not usable:
            return self._build_no_source_prompt(question, terms, CoachMode.UPLOADED, documents_loaded=0)
        return self._prepare_heuristic(question, terms, usable, preamble, CoachMode.UPLOADED)

    async def do_smart_search(
        self,
        question: str,
        handles: list[DocumentHandle],
        credentials: CredentialProviderInterface,
    ) -> SmartSearchReport:
        """Judge and rank the documents for a question without answering it.

        Raises:
            InvalidArgumentError: Empty question or credential.
            CredentialExpiredError: If the Document Store rejects the token. The credential is cleared first.
        """
        question = self._require_question(question)
        credential = credentials.require()
        documents = await self._do_acquire(handles, credential, credentials)
        ranked = await self._do_rank(documents, question) if documents else RankedResults()
        return SmartSearchReport(
            query=question,
            total_files=len(documents),
            relevant_files=len(ranked.results),
            ranked=ranked,
        )

    def do_answer(self, prepared: PreparedPrompt) -> AsyncIterator[AnswerUpdate]:
        """Stream the answer to a prepared prompt. See AnswerStreamer.stream_answer."""
        return self.streamer.stream_answer(prepared.prompt)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _require_question(self, question: str) -> str:
        if not question or not question.strip():
            raise InvalidArgumentError("The question must not be empty.")
        return question.strip()

    def _check_input_budget(self, required_chars: int) -> None:
        if required_chars > self.max_context_chars:
            raise BudgetExceededAtInputError(required_chars, self.max_context_chars)

    async def _do_acquire(
        self,
        handles: list[DocumentHandle],
        credential: str,
        credentials: CredentialProviderInterface,
    ) -> list[ExtractedDocument]:
        try:
            return await self.acquisition.do_acquire(handles, credential)
        except CredentialExpiredError:
            self.logging.warning("Document Store credential expired; clearing it")
            credentials.clear()
            raise

    async def _do_rank(self, documents: list[ExtractedDocument], question: str) -> RankedResults:
        judged = await self.judge.judge_all(documents, question)
        ranked = self.ranker.rank_and_filter(judged)
        self.logging.info(
            "Smart search: %d of %d documents relevant, highest score %d, average confidence %d%%",
            len(ranked.results), len(documents), ranked.meta.highest_score, ranked.meta.average_confidence,
        )
        return ranked

    def _prepare_heuristic(
        self,
        question: str,
        terms: SearchTermSet,
        documents: list[ExtractedDocument],
        preamble: str,
        mode: CoachMode,
    ) -> PreparedPrompt:
        scored = self.scorer.score_documents(documents, terms)
        for item in scored:
            self.logging.debug("%s: relevance score %d", item.document.handle.display_name, item.score)
        context = self.packer.pack(scored, question, terms, max_chars=self.max_context_chars - len(preamble))
        # the packer includes a prefix of the score ordering
        included = sorted(scored, key=lambda item: item.score, reverse=True)[:len(context.included)]
        sources = [
            SourceReference(name=item.document.handle.display_name, path=item.document.handle.locator_path, score=item.score)
            for item in included
        ]
        return self._finalise(preamble, context, mode, terms, sources, len(documents))

    def _finalise(
        self,
        preamble: str,
        context: AssembledContext,
        mode: CoachMode,
        terms: SearchTermSet,
        sources: list[SourceReference],
        documents_loaded: int,
        ranking: RankedResults | None = None,
    ) -> PreparedPrompt:
        prompt = preamble + context.text
        self._check_input_budget(len(prompt))
        return PreparedPrompt(
            prompt=prompt,
            mode=mode,
            search_terms=list(terms),
            sources=sources,
            no_relevant_sources=False,
            documents_loaded=documents_loaded,
            ranking=ranking.meta if ranking is not None else None,
        )

    def _build_no_source_prompt(
        self,
        question: str,
        terms: SearchTermSet,
        mode: CoachMode,
        documents_loaded: int,
        ranking: RankedResults | None = None,
    ) -> PreparedPrompt:
        prompt = NO_SOURCE_INSTRUCTIONS.format(question=question)
        self._check_input_budget(len(prompt))
        self.logging.info("No usable sources for the question; answering from general knowledge", color="yellow")
        return PreparedPrompt(
            prompt=prompt,
            mode=mode,
            search_terms=list(terms),
            no_relevant_sources=True,
            documents_loaded=documents_loaded,
            ranking=ranking.meta if ranking is not None else None,
        )
