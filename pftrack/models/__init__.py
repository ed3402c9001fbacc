from .state_space_models import StateSpaceModel, TranslationSSM, CornerHomographySSM, load_ssm
from .appearance_models import AppearanceModel, SSD, NCC, load_appearance_model
