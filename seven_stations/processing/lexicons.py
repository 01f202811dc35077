"""Word lists used by the heuristic parts of the stations."""

# Common nouns that denote a character when preceded by an article
ROLE_NOUNS = frozenset("""
astronaut pilot captain soldier detective officer doctor nurse scientist engineer
teacher student child boy girl man woman mother father son daughter brother sister
wife husband widow orphan king queen prince princess knight witch wizard
thief killer hunter farmer sailor stranger friend lover rival enemy villain hero
heroine priest nun monk lawyer judge reporter journalist writer artist musician
dancer singer boxer spy agent assassin robot android alien ghost vampire
grandmother grandfather uncle aunt cousin neighbor boss worker miner driver
refugee prisoner guard warden mayor president general colonel sergeant crew
survivor traveler wanderer outcast girlfriend boyfriend fiance bride groom
""".split())

LOCATION_NOUNS = frozenset("""
station ship planet city village town house apartment castle forest desert ocean
sea island mountain school hospital prison church temple office bar kitchen room
street road bridge harbor moon mars earth space colony base lab laboratory
""".split())

# Verbs after which the object is a significant story object
ACQUISITION_VERBS = frozenset("""
discovers discovered finds found receives received steals stole loses lost hides hid
seeks sought intercepts intercepted decodes decoded uncovers uncovered inherits
inherited builds built carries carried guards guarded destroys destroyed
""".split())

CONFLICT_VERBS = frozenset("""
fights fought attacks attacked betrays betrayed confronts confronted opposes opposed
threatens threatened kills killed hunts hunted argues argued hates hated rivals
defies defied blackmails blackmailed chases chased accuses accused resents resented
battles battled struggles struggled against versus vs deceives deceived
""".split())

ALLIANCE_VERBS = frozenset("""
helps helped loves loved saves saved joins joined trusts trusted protects protected
marries married befriends befriended rescues rescued supports supported comforts
comforted guides guided follows followed embraces embraced thanks thanked
""".split())

RESOLUTION_CUES = frozenset("""
reconciles reconciled forgives forgave resolves resolved defeats defeated escapes
escaped accepts accepted overcomes overcame ends ended finally peace truce returns
returned apologizes apologized understands understood saves saved frees freed
""".split())

TENSION_WORDS = frozenset("""
danger threat fear scream screams dies death blood gun knife fight attack alarm
explodes explosion chase panic trapped hunted race deadline storm crash fire
desperate urgent lonely alone lost silence silent signal warning betray betrayal
""".split()) | CONFLICT_VERBS

GENRE_LEXICON: dict[str, frozenset[str]] = {
    "science fiction": frozenset("""
        astronaut space spaceship ship planet alien signal orbit galaxy station robot
        android future colony mars moon star stars transmission laser cosmos rocket
    """.split()),
    "thriller": frozenset("""
        spy agent conspiracy chase hunted danger secret killer assassin trap threat
        deadline hostage escape betrayal mission
    """.split()),
    "crime": frozenset("""
        detective murder police crime thief heist gang prison investigation evidence
        suspect robbery killer cop
    """.split()),
    "romance": frozenset("""
        love lover kiss wedding heart marry married romance date bride groom
        girlfriend boyfriend passion
    """.split()),
    "drama": frozenset("""
        family mother father daughter son grief loss home memory divorce illness
        struggle sister brother funeral
    """.split()),
    "horror": frozenset("""
        ghost haunted blood scream demon monster vampire curse dark darkness nightmare
        corpse possessed
    """.split()),
    "fantasy": frozenset("""
        king queen kingdom magic wizard witch dragon sword prince princess quest
        prophecy realm spell
    """.split()),
    "comedy": frozenset("""
        funny joke laugh awkward prank silly party mistake chaos clumsy hilarious
    """.split()),
    "war": frozenset("""
        war soldier battle army general colonel sergeant enemy front trench bomb
        invasion regiment
    """.split()),
}

THEME_LEXICON: dict[str, frozenset[str]] = {
    "isolation": frozenset("lonely alone isolated solitude silence abandoned exile".split()),
    "discovery": frozenset("discovers discovered discovery finds found signal secret uncovers".split()),
    "survival": frozenset("survive survival survivor escape danger stranded trapped".split()),
    "love": frozenset("love lover loves heart romance kiss".split()),
    "betrayal": frozenset("betray betrays betrayed betrayal deceive deceived lie".split()),
    "power": frozenset("power throne control rule king queen empire ambition".split()),
    "identity": frozenset("identity who self mirror name mask stranger".split()),
    "redemption": frozenset("redemption forgive forgives forgiveness atone second chance".split()),
    "family": frozenset("family mother father daughter son sister brother home".split()),
    "loss": frozenset("loss grief dies death funeral lost mourning".split()),
    "justice": frozenset("justice law judge crime truth guilty innocent".split()),
}

# Images that commonly carry symbolic weight in scripts
SYMBOL_LEXICON = frozenset("""
light darkness dark shadow water fire mirror door window key signal star stars
storm rain sea river bridge road clock blood bird cage mask ring letter photograph
""".split())

TONE_LEXICON: dict[str, frozenset[str]] = {
    "melancholic": frozenset("lonely alone grief loss sad silence tears empty".split()),
    "tense": frozenset("danger threat fear panic chase trapped alarm".split()),
    "hopeful": frozenset("hope light dream discovers saves rescue dawn".split()),
    "dark": frozenset("death blood darkness kill killer corpse".split()),
    "playful": frozenset("funny laugh joke silly prank".split()),
}
