"""Error taxonomy shared by the retention and escalation components."""


class RetentionError(Exception):
    """Base class for recoverable retention-engine failures"""


class MissingDataError(RetentionError):
    """A required record or aggregate does not exist"""


class StudentNotFoundError(MissingDataError):
    pass


class GoalNotFoundError(MissingDataError):
    pass


class ConversationNotFoundError(MissingDataError):
    pass


class CollaboratorError(RetentionError):
    """An external collaborator (LLM, platform) call failed"""


class CollaboratorTimeoutError(CollaboratorError):
    """An external collaborator call exceeded its time budget"""


class MalformedResponseError(CollaboratorError):
    """A collaborator returned output that could not be parsed or validated"""


class CompletionEvaluationError(RetentionError):
    """The holistic goal completion judgment could not be obtained"""
