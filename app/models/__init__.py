from app.models.user import User
from app.models.movie import Movie
from app.models.payment import Payment
from app.models.access import Access
from app.models.id_sequence import IdSequence

# add ALL models here
