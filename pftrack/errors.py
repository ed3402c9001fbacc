class ConfigurationError(ValueError):
    '''Invalid filter configuration. Raised at construction, never recovered.'''


class PreconditionViolation(RuntimeError):
    '''A call made in the wrong state or with mismatched dimensions.'''


class CollaboratorError(RuntimeError):
    '''An appearance or state space model could not produce a valid patch/state.'''


class DegeneracyWarning(RuntimeWarning):
    '''All particle weights collapsed to zero and were reset to uniform.'''
