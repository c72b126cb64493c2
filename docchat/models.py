from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(CamelModel):
    message: str | None = None
    topic: str | None = None


class DocumentRef(BaseModel):
    id: int
    name: str


class ResponseMetadata(CamelModel):
    documents_analyzed: int = Field(alias="documentsAnalyzed")
    response_length: int = Field(alias="responseLength")
    max_tokens_used: int = Field(alias="maxTokensUsed")


class ChatResponse(CamelModel):
    response: str
    chat_id: int = Field(alias="chatId")
    topic: str
    message_id: int = Field(alias="messageId")
    documents_used: list[DocumentRef] = Field(alias="documentsUsed")
    response_metadata: ResponseMetadata = Field(alias="responseMetadata")


class ChatMessageResponse(CamelModel):
    id: int
    sender: str
    text: str
    is_liked: bool | None = Field(default=None, alias="isLiked")
    documents_referenced: list[DocumentRef] | None = Field(default=None, alias="documentsReferenced")
    timestamp: str


class ChatMessagesResponse(BaseModel):
    messages: list[ChatMessageResponse]


class ChatTopicResponse(BaseModel):
    topic: str


class ChatSessionResponse(CamelModel):
    id: int
    topic: str
    user_id: str = Field(alias="userId")
    message_count: int = Field(alias="messageCount")
    total_likes: int = Field(alias="totalLikes")
    total_dislikes: int = Field(alias="totalDislikes")
    created_date: str = Field(alias="createdDate")
    last_activity: str = Field(alias="lastActivity")


class ChatSessionsResponse(BaseModel):
    sessions: list[ChatSessionResponse]


class ReactionRequest(CamelModel):
    is_liked: bool | None = Field(default=None, alias="isLiked")


class ReactionResponse(CamelModel):
    success: bool
    message_id: int = Field(alias="messageId")
    is_liked: bool | None = Field(alias="isLiked")


class DocumentResponse(CamelModel):
    id: int
    filename: str
    original_name: str = Field(alias="originalName")
    upload_date: str = Field(alias="uploadDate")


class AvailableDocument(CamelModel):
    id: int
    name: str
    upload_date: str = Field(alias="uploadDate")
    size: int
    type: str
    index: int
    available: bool


class AvailableDocumentsResponse(BaseModel):
    documents: list[AvailableDocument]
    total: int
    message: str


class UploadResponse(BaseModel):
    message: str
    id: int


class RenameDocumentRequest(CamelModel):
    original_name: str = Field(alias="originalName")


class MessageResponse(BaseModel):
    message: str


class SettingsResponse(CamelModel):
    greeting_message: str = Field(alias="greetingMessage")
    updated_by: str = Field(alias="updatedBy")
    last_updated: str = Field(alias="lastUpdated")


class SaveSettingsRequest(CamelModel):
    greeting_message: str | None = Field(default=None, alias="greetingMessage")
    updated_by: str | None = Field(default=None, alias="updatedBy")


class SaveSettingsResponse(CamelModel):
    success: bool
    message: str
    last_updated: str = Field(alias="lastUpdated")


class TemplateQuestion(CamelModel):
    id: int
    question: str
    answer: str
    updated_by: str = Field(alias="updatedBy")
    last_updated: str = Field(alias="lastUpdated")
    is_active: bool = Field(alias="isActive")


class TemplateQuestionsResponse(BaseModel):
    questions: list[TemplateQuestion]
    total: int


class TemplateQuestionRequest(CamelModel):
    question: str | None = None
    answer: str | None = None
    updated_by: str | None = Field(default=None, alias="updatedBy")


class SuccessResponse(BaseModel):
    success: bool
    message: str
