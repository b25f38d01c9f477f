class ModelException(Exception):
    def __init__(self, operation_message: str, message: str, name: str = None):
        if name is None:
            exception_message = f"An error occurred while {operation_message}\n{message}"
        else:
            exception_message = f"An error occurred while {operation_message} '{name}':\n{message}"
        super().__init__(exception_message)
        self.name = name


class DeclarationError(ModelException):
    """
    Raised while building a model. These abort model construction
    """

    def __init__(self, message: str, name: str = None):
        super().__init__("declaring", message, name)


class DuplicateDeclarationError(DeclarationError):
    pass


class CyclicDependencyError(DeclarationError):
    pass


class ModelFrozenError(DeclarationError):
    pass


class EvaluationError(ModelException):
    """
    Raised while evaluating a model at a point. A caller driving a sampler should
    treat this as the point having zero density
    """

    def __init__(self, message: str, name: str = None):
        super().__init__("evaluating", message, name)


class DomainError(EvaluationError):
    pass


class NonInvertibleError(EvaluationError):
    pass


class MissingCorrectionWarning(UserWarning):
    def __init__(self, name: str):
        warning_message = (
            f"Density statement on derived variable '{name}', which was declared without auto_correct. No Jacobian"
            " correction will be added for it. Declare it with auto_correct=True if the density is meant to describe"
            " the distribution of the derived variable"
        )
        super().__init__(warning_message)
        self.name = name
