# Page-level pipeline modules
from .config import PipelineConfig
from .errors import DocumentOpenError, ExtractionError, PageRecognitionError
from .pipeline import LabExtractionPipeline, PageContent, TextRecognizer, build_default_pipeline

__all__ = [
    'DocumentOpenError',
    'ExtractionError',
    'LabExtractionPipeline',
    'PageContent',
    'PageRecognitionError',
    'PipelineConfig',
    'TextRecognizer',
    'build_default_pipeline',
]
