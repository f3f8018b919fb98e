"""Common error handling for all services"""

class ServiceError(Exception):
    """Base exception for all service errors"""
    pass

class NudgeError(ServiceError):
    """Base exception for nudge generation errors"""
    pass

class GenerationError(NudgeError):
    """Raised when the text generation capability returns nothing usable"""
    pass

class GenerationTimeoutError(GenerationError):
    """Raised when a generation call exceeds its time budget"""
    pass

class AnalyzerError(ServiceError):
    """Base exception for analyzer-related errors"""
    pass

class ClassificationError(AnalyzerError):
    """Raised when a focus classification fails or cannot be parsed"""
    pass

class ImageError(ServiceError):
    """Base exception for image-related errors"""
    pass

class WindowError(ServiceError):
    """Raised when OS window or idle introspection fails"""
    pass

class SchedulerError(ServiceError):
    """Raised when scheduling on a closed scheduler"""
    pass
