from flask_wtf import FlaskForm
from wtforms import BooleanField, SelectField, StringField
from wtforms.validators import URL, DataRequired, Length, Optional

import config
from models import (
    ALL_SORTS,
    SOURCE_POST_URL,
    SOURCE_SEARCH,
    SOURCE_SUBREDDIT,
    ImageResolution,
    MediaInfo,
    Post,
    Query,
    VideoInfo,
    normalize_subreddit_name,
    sorts_for_source,
)


class ApiForm(FlaskForm):
    """JSON API forms: no CSRF token, data comes from query args or a JSON body."""

    class Meta:
        csrf = False


class BrowseForm(ApiForm):
    subreddit = StringField("Subreddit", default="", validators=[Optional(), Length(max=50)])
    q = StringField("Search", default="", validators=[Optional(), Length(max=512)])
    url = StringField("Post URL", default="", validators=[Optional(), Length(max=2048)])
    sort = SelectField(
        "Sort",
        choices=[(sort, sort) for sort in ALL_SORTS],
        default=config.DEFAULT_SORT,
    )

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators=extra_validators):
            return False
        sources = [field for field in (self.subreddit, self.q, self.url) if (field.data or "").strip()]
        if len(sources) > 1:
            self.form_errors.append("Use only one of subreddit, q or url.")
            return False
        source = self._source()
        if self.sort.data not in sorts_for_source(source):
            self.sort.errors.append(f"Sort '{self.sort.data}' is not available when browsing by {source}.")
            return False
        return True

    def _source(self) -> str:
        if (self.url.data or "").strip():
            return SOURCE_POST_URL
        if (self.q.data or "").strip():
            return SOURCE_SEARCH
        return SOURCE_SUBREDDIT

    def to_query(self) -> Query:
        sort = self.sort.data or config.DEFAULT_SORT
        if (self.url.data or "").strip():
            return Query(post_url=self.url.data.strip(), sort=sort)
        if (self.q.data or "").strip():
            return Query(search=self.q.data.strip(), sort=sort)
        subreddit = normalize_subreddit_name(self.subreddit.data or "") or config.DEFAULT_SUBREDDIT
        return Query(sort=sort).with_subreddit(subreddit)


class AssistForm(ApiForm):
    id = StringField("Post ID", default="", validators=[Optional(), Length(max=20)])
    title = StringField("Title", validators=[DataRequired(), Length(max=400)])
    subreddit = StringField("Subreddit", validators=[DataRequired(), Length(max=50)])
    permalink = StringField("Permalink", default="", validators=[Optional(), Length(max=2048)])
    author = StringField("Author", default="[deleted]", validators=[Optional(), Length(max=50)])

    def to_post(self) -> Post:
        return Post(
            id=(self.id.data or "").strip(),
            title=self.title.data.strip(),
            subreddit=normalize_subreddit_name(self.subreddit.data),
            permalink=(self.permalink.data or "").strip(),
            author=(self.author.data or "").strip() or "[deleted]",
        )


class DownloadForm(ApiForm):
    id = StringField("Post ID", validators=[DataRequired(), Length(max=20)])
    permalink = StringField("Permalink", validators=[DataRequired(), Length(max=2048)])
    image_url = StringField("Image URL", default="", validators=[Optional(), URL(require_tld=True)])
    video_url = StringField("Video URL", default="", validators=[Optional(), URL(require_tld=True)])
    dash_url = StringField("DASH URL", default="", validators=[Optional(), URL(require_tld=True)])
    is_gif = BooleanField("Looping clip")

    def to_post(self) -> Post:
        video = None
        source_image = ImageResolution(url=self.image_url.data) if self.image_url.data else None
        if self.video_url.data:
            video = VideoInfo(
                fallback_url=self.video_url.data,
                dash_url=self.dash_url.data or "",
                is_gif=bool(self.is_gif.data),
            )
        return Post(
            id=self.id.data.strip(),
            title="",
            permalink=self.permalink.data.strip(),
            url=self.image_url.data or "",
            is_video=video is not None,
            media=MediaInfo(source_image=source_image, video=video),
        )
