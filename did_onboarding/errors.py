"""
RYT DID Onboarding Errors
Failures raised by the external collaborators the wizard depends on.
The state machine itself never raises for bad sequencing.
"""


class OnboardingError(Exception):
    """Base class for collaborator failures surfaced to the calling step."""


class NotConnected(OnboardingError):
    """No wallet address could be obtained or proven."""


class CaptchaFailed(OnboardingError):
    """The CAPTCHA token was rejected."""


class UploadError(OnboardingError):
    """Pinning content to IPFS failed."""


class ExtractionError(OnboardingError):
    """The vision service returned no usable identity record."""


class MintError(OnboardingError):
    """The DID token could not be minted."""


class StepMismatch(OnboardingError):
    """A step handler was invoked while the session is on another step."""

    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        if isinstance(expected, (tuple, list)):
            wanted = " or ".join(step.name for step in expected)
        else:
            wanted = expected.name
        super().__init__(f"Session is on {actual.name}, expected {wanted}")
